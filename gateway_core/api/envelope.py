"""统一响应信封。

每个 JSON 对象响应都会被包成 ``{status, creator, ...payload}``：

- status：payload 自带 status 时保留原值，否则由 success 推导（真为 "success"，否则 "error"）；
- creator：payload 未设置时填入配置的 creator；
- 非对象（字符串、列表、流）原样透传。

包装只在 EnvelopeJSONResponse 渲染时发生一次；对已包装的 payload 再次调用结果不变。
"""

from typing import Any, Dict

from fastapi.responses import JSONResponse

from gateway_core.config.settings import settings


def apply_envelope(payload: Any, creator: str) -> Any:
    if not isinstance(payload, dict):
        return payload
    status = "success" if payload.get("success") else "error"
    wrapped: Dict[str, Any] = {"status": status, "creator": creator}
    wrapped.update(payload)
    return wrapped


class EnvelopeJSONResponse(JSONResponse):
    """FastAPI 默认响应类：render 时套一次信封。"""

    creator: str = settings.creator

    def render(self, content: Any) -> bytes:
        return super().render(apply_envelope(content, self.creator))


def envelope_response_class(creator: str) -> type:
    """为指定 creator 生成响应类，供 create_app 按注入的 settings 使用。"""

    return type("EnvelopeJSONResponse", (EnvelopeJSONResponse,), {"creator": creator})
