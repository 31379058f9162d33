"""AI 相关端点：多后端对话、流式对话、图片生成。"""

import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict

from fastapi.responses import StreamingResponse

from gateway_core.backends.chat import OpenAICompatibleChat
from gateway_core.domain.exceptions import GatewayError, ValidationError
from gateway_core.domain.models import DEFAULT_CONVERSATION_KEY, OperationRequest
from gateway_core.handlers.base import HandlerContext, resolve_family
from gateway_core.infrastructure.logging.logger import logger


CHAT_EXAMPLE = "/ai/chat?text=Hello, how are you?"


async def chat(ctx: HandlerContext) -> Dict[str, Any]:
    """一轮对话。

    历史只在编排器返回成功之后写入一次，任何后端失败都不会留下半截历史。
    """

    text = ctx.require("text", "message", example=CHAT_EXAMPLE, message="Text or message parameter is required")
    key = ctx.param("userId", "user_id", default=DEFAULT_CONVERSATION_KEY)
    store = ctx.conversations

    if ctx.flag("clearHistory"):
        await store.clear(key)

    history = await store.read(key)
    request = OperationRequest(params={"text": text}, conversation_key=key, history=history)
    result = await ctx.orchestrator.resolve("chat", request)

    reply = result.data["response"]
    await store.append(key, text, reply)
    count = len(await store.read(key)) // 2

    payload = result.to_payload()
    payload["data"] = {
        "response": reply,
        "message": text,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "conversation_id": key,
        "message_count": count,
    }
    return payload


async def stream(ctx: HandlerContext) -> StreamingResponse:
    """SSE 透传：取 chat 族中第一个支持流式的后端，不做降级。"""

    text = ctx.require("text", "message", example="/ai/stream?text=Tell me a story")
    backend = next(
        (s for s in ctx.orchestrator.strategies_for("chat") if isinstance(s, OpenAICompatibleChat)),
        None,
    )
    if backend is None:
        raise GatewayError(code="STREAM_UNAVAILABLE", message="No streaming-capable chat backend", http_status=503)
    request = OperationRequest(params={"text": text})

    async def events() -> AsyncIterator[str]:
        try:
            async for delta in backend.stream(request):
                yield f"data: {json.dumps({'content': delta}, ensure_ascii=False)}\n\n"
        except GatewayError as exc:
            logger.warning(
                "Stream failed",
                extra={"extra": {"backend": backend.name, "reason": exc.message}},
            )
            yield f"data: {json.dumps({'error': exc.message}, ensure_ascii=False)}\n\n"
        except Exception as exc:
            logger.error(
                "Stream crashed",
                exc_info=True,
                extra={"extra": {"backend": backend.name}},
            )
            detail = str(exc) if ctx.settings.debug else "Something went wrong"
            yield f"data: {json.dumps({'error': detail}, ensure_ascii=False)}\n\n"
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


async def imagine(ctx: HandlerContext) -> Dict[str, Any]:
    prompt = ctx.require("prompt", example="/ai/imagine?prompt=a beautiful sunset over mountains")
    sizes = {}
    for name in ("width", "height"):
        raw = ctx.param(name)
        if raw is None:
            continue
        try:
            sizes[name] = max(64, min(int(raw), 2048))
        except (TypeError, ValueError):
            raise ValidationError(message=f"{name} must be an integer", example="/ai/imagine?prompt=cat&width=512")
    return await resolve_family(ctx, "imagine", prompt=prompt, **sizes)
