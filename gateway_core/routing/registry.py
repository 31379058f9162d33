"""路由注册表。

路由表是一个声明式的嵌套映射（通常来自 config/routes.yaml）::

    ai:
      chat: gateway_core.handlers.ai:chat
    download:
      tiktok: gateway_core.handlers.download:tiktok

分类名成为路径段，单元名成为最后一段，上例绑定 /ai/chat 与 /download/tiktok。
每个单元是一个 "模块:属性" 导入串，指向形如 ``async def handler(ctx)`` 的协程函数。

- 单个单元加载失败（导入失败、属性不存在、调用约定不符）只记入报告，不影响其他单元；
- 同一路径再次注册会原子地替换旧绑定（热重载即 reload 模块后再注册）；
- 所有写操作与 list() 共用一把锁，保证热重载与并发读取互不干扰。
"""

import importlib
import inspect
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from gateway_core.domain.exceptions import RouteLoadError
from gateway_core.domain.models import Handler, LoadFailure, LoadReport, RouteBinding
from gateway_core.infrastructure.logging.logger import logger


def normalize_path(path: str) -> str:
    return "/" + "/".join(seg for seg in str(path).split("/") if seg)


def iter_units(source: Mapping[str, Any], prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[str, Any]]:
    """深度优先遍历路由表，产出 (单元路径, 目标) 对；分类的顺序保持原样。"""

    for name, value in source.items():
        segments = prefix + (str(name).strip("/"),)
        if isinstance(value, Mapping):
            yield from iter_units(value, segments)
        else:
            yield "/".join(segments), value


def validate_handler(unit: str, handler: Any) -> Handler:
    """检查 handler 是否符合 ``async def handler(ctx)`` 的调用约定。"""

    if not callable(handler):
        raise RouteLoadError(unit, f"target is not callable ({type(handler).__name__})")
    if not inspect.iscoroutinefunction(handler):
        raise RouteLoadError(unit, "handler must be an async function taking one request context")
    try:
        params = list(inspect.signature(handler).parameters.values())
    except (TypeError, ValueError) as exc:
        raise RouteLoadError(unit, f"cannot inspect handler signature: {exc}")
    positional = [
        p for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
    ]
    if len(positional) != 1:
        raise RouteLoadError(unit, f"handler must accept exactly one argument, got {len(positional)}")
    return handler


class RouteRegistry:
    def __init__(self) -> None:
        self._bindings: Dict[str, RouteBinding] = {}
        self._lock = threading.RLock()

    # ---- 基本操作 ----

    def register(
        self,
        path: str,
        handler: Handler,
        unit: Optional[str] = None,
        target: str = "",
    ) -> RouteBinding:
        key = normalize_path(path)
        binding = RouteBinding(
            path=key,
            handler=validate_handler(unit or key.lstrip("/"), handler),
            unit=unit or key.lstrip("/"),
            target=target or getattr(handler, "__qualname__", repr(handler)),
        )
        with self._lock:
            replaced = key in self._bindings
            self._bindings[key] = binding
        if replaced:
            logger.info("Replaced route binding", extra={"extra": {"path": key, "target": binding.target}})
        return binding

    def unregister(self, path: str) -> bool:
        with self._lock:
            return self._bindings.pop(normalize_path(path), None) is not None

    def get(self, path: str) -> Optional[RouteBinding]:
        with self._lock:
            return self._bindings.get(normalize_path(path))

    def list(self) -> List[RouteBinding]:
        with self._lock:
            return [self._bindings[k] for k in sorted(self._bindings)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)

    # ---- 批量加载与热重载 ----

    def load_from(self, source: Mapping[str, Any], prefix: str = "") -> LoadReport:
        """按路由表加载所有单元，单个失败不影响其余单元。"""

        report = LoadReport()
        base = tuple(seg for seg in prefix.split("/") if seg)
        with self._lock:
            for unit, target in iter_units(source, base):
                try:
                    handler = self._resolve_target(unit, target)
                    binding = self.register(unit, handler, unit=unit, target=str(target))
                except RouteLoadError as exc:
                    report.failed.append(LoadFailure(unit=unit, reason=exc.reason))
                    logger.warning("Failed to load route", extra={"extra": {"unit": unit, "reason": exc.reason}})
                    continue
                report.loaded += 1
                report.paths.append(binding.path)
        logger.info(
            "Route load complete",
            extra={"extra": {"loaded": report.loaded, "failed": len(report.failed)}},
        )
        return report

    def reload(self, unit: str) -> RouteBinding:
        """重新导入某个已绑定单元的模块并原子替换其绑定；其他绑定不受影响。"""

        key = normalize_path(unit)
        with self._lock:
            current = self._bindings.get(key)
            if current is None:
                raise RouteLoadError(unit, "no such route")
            handler = self._resolve_target(current.unit, current.target, fresh=True)
            binding = self.register(key, handler, unit=current.unit, target=current.target)
        logger.info("Reloaded route", extra={"extra": {"path": key, "target": binding.target}})
        return binding

    @staticmethod
    def _resolve_target(unit: str, target: Any, fresh: bool = False) -> Handler:
        """把 "模块:属性" 解析为 handler；fresh=True 时先 reload 模块，丢弃缓存的旧版本。"""

        if callable(target):
            return validate_handler(unit, target)
        if not isinstance(target, str) or ":" not in target:
            raise RouteLoadError(unit, f"malformed target {target!r}, expected 'module:attribute'")
        module_name, _, attr = target.partition(":")
        try:
            module = importlib.import_module(module_name)
            if fresh:
                module = importlib.reload(module)
        except Exception as exc:
            raise RouteLoadError(unit, f"import of {module_name} failed: {exc}", cause=exc)
        handler = getattr(module, attr, None)
        if handler is None:
            raise RouteLoadError(unit, f"{module_name} has no attribute {attr!r}")
        return validate_handler(unit, handler)
