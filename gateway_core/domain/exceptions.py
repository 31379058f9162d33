"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 GatewayError，
HTTP 层按 http_status 统一渲染为 success=false 的信封响应。
"""

from typing import Any, Dict, List, Optional


class GatewayError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_PARAMETER"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时使用的状态码，默认 400。
        extra: 其他补充字段，会原样合并进响应体（例如 example、failures）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "code": self.code, "message": self.message}
        payload.update(self.extra)
        return payload


class ValidationError(GatewayError):
    """参数校验失败（客户端错误），在 handler 边界就地返回 400。"""

    def __init__(self, message: str, example: str, **extra):
        super().__init__(code="MISSING_PARAMETER", message=message, http_status=400, example=example, **extra)


class NetworkError(GatewayError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(GatewayError):
    """上游返回非 2xx 时抛出。"""


class RateLimitError(GatewayError):
    """上游限流（429）。"""


class BackendError(GatewayError):
    """上游响应可达但内容不可用：结构不符、无结果、缺少凭据等。"""


class AllBackendsFailed(GatewayError):
    """某个操作族的全部策略均失败。

    failures 保留每个策略的失败原因（按尝试顺序），便于排查。
    """

    def __init__(self, family: str, failures: List[Any]):
        self.family = family
        self.failures = list(failures)
        super().__init__(
            code="ALL_BACKENDS_FAILED",
            message=f"All backends failed for {family}",
            http_status=500,
            family=family,
            failures=[{"strategy": f.strategy, "reason": f.reason} for f in self.failures],
        )


class UnknownFamilyError(GatewayError):
    """请求了未配置任何策略的操作族（配置错误）。"""

    def __init__(self, family: str):
        super().__init__(code="UNKNOWN_FAMILY", message=f"No backends configured for {family!r}", http_status=500)


class RouteLoadError(GatewayError):
    """单个 handler 单元加载失败；由 RouteRegistry 捕获并记录在加载报告中。"""

    def __init__(self, unit: str, reason: str, cause: Optional[BaseException] = None):
        self.unit = unit
        self.reason = reason
        self.cause = cause
        super().__init__(code="ROUTE_LOAD_ERROR", message=f"{unit}: {reason}", http_status=500)
