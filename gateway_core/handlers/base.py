"""handler 公共部分。

每个路由单元都是 ``async def handler(ctx: HandlerContext) -> dict | Response``：

- ctx.params：合并后的请求参数（query 在前，JSON/表单 body 覆盖同名项）；
- ctx.services：进程级组件（编排器、对话存储、路由表、配置），由 app 注入。

参数校验失败抛 ValidationError，由 HTTP 层统一渲染为 400。
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from gateway_core.domain.exceptions import ValidationError
from gateway_core.domain.models import OperationRequest


@dataclass
class HandlerContext:
    path: str
    method: str
    params: Mapping[str, Any]
    services: Any

    def param(self, *names: str, default: Any = None) -> Optional[str]:
        """按顺序返回第一个非空参数（支持别名，如 text/message）。

        参数一律按字符串处理：JSON body 中的数字、布尔值转成字符串，
        对象和数组视为未提供。
        """

        for name in names:
            value = self.params.get(name)
            if value is None or isinstance(value, (dict, list, tuple)):
                continue
            value = str(value).strip()
            if value:
                return value
        return default

    def require(self, *names: str, example: str, message: Optional[str] = None) -> Any:
        value = self.param(*names)
        if value is None:
            label = " or ".join(names)
            raise ValidationError(
                message=message or f"{label[0].upper()}{label[1:]} parameter is required",
                example=example,
            )
        return value

    def flag(self, name: str) -> bool:
        return str(self.params.get(name, "")).strip().lower() in {"1", "true", "yes"}

    @property
    def orchestrator(self):
        return self.services.orchestrator

    @property
    def conversations(self):
        return self.services.conversations

    @property
    def settings(self):
        return self.services.settings


async def resolve_family(ctx: HandlerContext, family: str, **params: Any) -> Dict[str, Any]:
    """无状态操作族的通用流程：构造请求 -> 编排 -> 输出统一 payload。"""

    request = OperationRequest(params={k: v for k, v in params.items() if v is not None})
    result = await ctx.orchestrator.resolve(family, request)
    return result.to_payload()


def family_handler(family: str, param_names: tuple, example: str, target: str = "query", **optional: Any):
    """为“一个必填参数 + 一个操作族”的端点生成 handler。

    optional 把内部参数名映射到请求参数名（或别名元组），取不到时不传。
    """

    async def handler(ctx: HandlerContext) -> Dict[str, Any]:
        value = ctx.require(*param_names, example=example)
        extra = {k: ctx.param(*(v if isinstance(v, tuple) else (v,))) for k, v in optional.items()}
        return await resolve_family(ctx, family, **{target: value}, **extra)

    handler.__name__ = handler.__qualname__ = family.replace(".", "_")
    return handler
