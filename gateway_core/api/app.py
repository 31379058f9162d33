"""HTTP 入口（FastAPI 应用工厂）。

- 诊断端点（/、/api/status、/api/routes ...）是普通 FastAPI 路由，先于兜底路由注册；
- 业务端点全部经由一个 ``/{path}`` 兜底分发器，按 RouteRegistry 查表调用 handler，
  因此热重载只需替换注册表里的绑定，不必改动 FastAPI 的路由表；
- 所有 JSON 对象响应由 EnvelopeJSONResponse 统一套信封；
- GatewayError 按 http_status 渲染，未知路径 404，未预期异常 500。

启动时路由表文件不可读视为致命错误（RouteLoadError），由 __main__ 以状态码 1 退出。
"""

import asyncio
import contextlib
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway_core.api.envelope import envelope_response_class
from gateway_core.backends import build_strategies
from gateway_core.backends.base import BackendStrategy
from gateway_core.config.settings import Settings, settings as default_settings
from gateway_core.domain.exceptions import GatewayError, RouteLoadError, ValidationError
from gateway_core.handlers.base import HandlerContext
from gateway_core.infrastructure.logging.logger import logger
from gateway_core.infrastructure.storage.memory_store import InMemoryConversationStore
from gateway_core.orchestrator import FallbackOrchestrator
from gateway_core.routing.registry import RouteRegistry


ROUTES_HINT = "/api/routes"


@dataclass
class GatewayServices:
    """进程级组件，挂在 app.state.services 上并注入每个 HandlerContext。"""

    settings: Settings
    orchestrator: FallbackOrchestrator
    conversations: InMemoryConversationStore
    registry: RouteRegistry
    started_at: float = field(default_factory=time.time)

    def uptime(self) -> float:
        return round(time.time() - self.started_at, 3)


def load_route_table(path: str) -> Dict[str, Any]:
    """读取声明式路由表；文件不存在或格式错误时抛 RouteLoadError。"""

    source = Path(path)
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise RouteLoadError(str(source), f"cannot read route table: {exc}", cause=exc)
    if not isinstance(data, dict):
        raise RouteLoadError(str(source), "route table must be a mapping of category -> units")
    return data


async def _collect_params(request: Request) -> Dict[str, Any]:
    """合并 query 与 body 参数，body 覆盖同名 query 参数。"""

    params: Dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return params
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        if not await request.body():
            return params
        try:
            data = await request.json()
        except ValueError:
            raise GatewayError(code="INVALID_BODY", message="Request body is not valid JSON")
        if isinstance(data, dict):
            params.update(data)
    elif content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        # 上传的文件不作为参数
        params.update((k, v) for k, v in form.multi_items() if isinstance(v, str))
    return params


async def _evict_idle_loop(store: InMemoryConversationStore, max_idle: float, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await store.evict_idle(max_idle)


def create_app(
    cfg: Optional[Settings] = None,
    routes: Optional[Mapping[str, Any]] = None,
    strategies: Optional[Mapping[str, List[BackendStrategy]]] = None,
    store: Optional[InMemoryConversationStore] = None,
) -> FastAPI:
    cfg = cfg or default_settings
    if routes is None:
        routes = load_route_table(cfg.routes_file)

    registry = RouteRegistry()
    report = registry.load_from(routes)
    services = GatewayServices(
        settings=cfg,
        orchestrator=FallbackOrchestrator(
            strategies if strategies is not None else build_strategies(cfg),
            overall_timeout=cfg.overall_timeout,
        ),
        conversations=store or InMemoryConversationStore(max_entries=cfg.max_history_entries),
        registry=registry,
    )
    EnvelopeResponse = envelope_response_class(cfg.creator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Gateway starting",
            extra={"extra": {"name": cfg.name, "version": cfg.version, "routes": len(registry)}},
        )
        eviction = None
        if cfg.conversation_idle_ttl > 0:
            eviction = asyncio.create_task(
                _evict_idle_loop(services.conversations, cfg.conversation_idle_ttl, cfg.eviction_interval)
            )
        try:
            yield
        finally:
            if eviction is not None:
                eviction.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await eviction
            await services.conversations.close()
            logger.info("Gateway stopped", extra={"extra": {"uptime_seconds": services.uptime()}})

    app = FastAPI(
        title=cfg.name,
        version=cfg.version,
        lifespan=lifespan,
        default_response_class=EnvelopeResponse,
    )
    app.state.services = services
    app.state.load_report = report

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def not_found(path: str) -> Response:
        return EnvelopeResponse(
            status_code=404,
            content={
                "success": False,
                "message": "Endpoint not found",
                "path": path,
                "suggestion": f"Visit {ROUTES_HINT} for the list of available endpoints",
            },
        )

    def internal_error(exc: BaseException) -> Response:
        return EnvelopeResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "error": str(exc) if cfg.debug else "Something went wrong",
            },
        )

    # ---- 异常处理 ----

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError):
        return EnvelopeResponse(status_code=exc.http_status, content=jsonable_encoder(exc.to_payload()))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return not_found(request.url.path)
        return EnvelopeResponse(status_code=exc.status_code, content={"success": False, "message": str(exc.detail)})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("Unhandled error", exc_info=True, extra={"extra": {"path": request.url.path}})
        return internal_error(exc)

    # ---- 诊断端点 ----

    @app.get("/")
    async def index():
        return {
            "success": True,
            "name": cfg.name,
            "version": cfg.version,
            "message": f"Welcome to {cfg.name}",
            "endpoints": len(registry),
            "routes": ROUTES_HINT,
        }

    @app.get("/api/settings")
    async def public_settings():
        return {"success": True, "settings": cfg.public_view()}

    @app.get("/api/status")
    async def status():
        return {
            "success": True,
            "status": "online",
            "version": cfg.version,
            "uptime": services.uptime(),
            "routes": len(registry),
            "families": services.orchestrator.families,
            "conversations": len(services.conversations.keys()),
            "load": report.to_dict(),
        }

    @app.get("/api/routes")
    async def list_routes():
        bindings = registry.list()
        return {
            "success": True,
            "total": len(bindings),
            "routes": [
                {"path": b.path, "methods": list(b.methods), "unit": b.unit, "target": b.target}
                for b in bindings
            ],
            "failed": report.to_dict()["failed"],
        }

    @app.post("/api/routes/reload")
    async def reload_route(unit: Optional[str] = None):
        if not unit:
            raise ValidationError(message="Unit parameter is required", example="/api/routes/reload?unit=ai/chat")
        if registry.get(unit) is None:
            raise GatewayError(code="ROUTE_NOT_FOUND", message=f"No route bound for {unit}", http_status=404)
        binding = registry.reload(unit)
        return {"success": True, "path": binding.path, "target": binding.target}

    @app.get("/health")
    async def health():
        return {
            "success": True,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/ping")
    async def ping():
        return {"success": True, "message": "pong"}

    # ---- 业务端点兜底分发 ----

    @app.api_route("/{full_path:path}", methods=["GET", "POST"])
    async def dispatch(full_path: str, request: Request):
        binding = registry.get(full_path)
        if binding is None or request.method not in binding.methods:
            return not_found(request.url.path)

        ctx = HandlerContext(
            path=binding.path,
            method=request.method,
            params=await _collect_params(request),
            services=services,
        )
        try:
            result = await binding.handler(ctx)
        except GatewayError:
            raise
        except Exception as exc:
            logger.error(
                "Handler crashed",
                exc_info=True,
                extra={"extra": {"path": binding.path, "method": ctx.method, "target": binding.target}},
            )
            return internal_error(exc)

        if isinstance(result, Response):
            return result
        return EnvelopeResponse(content=jsonable_encoder(result))

    return app
