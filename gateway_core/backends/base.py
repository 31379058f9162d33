"""后端策略抽象接口。

编排器不直接依赖任何上游的 HTTP 细节，而是依赖此协议：

- 每个上游实现一个 BackendStrategy（如 LrclibBackend）。
- 负责：把 OperationRequest 转成具体的上游请求，并把响应解析为 OperationResult。
- 失败时抛出 domain.exceptions 中的异常，或直接返回 StrategyFailure。

同一操作族的策略可以互相替换，调用方永远不需要关心结果来自哪个后端。
"""

import json
from typing import Any, Dict, Optional, Protocol, Union

import httpx

from gateway_core.domain.exceptions import ApiError, BackendError, NetworkError, RateLimitError
from gateway_core.domain.models import OperationRequest, OperationResult, StrategyFailure


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

Outcome = Union[OperationResult, StrategyFailure]


class BackendStrategy(Protocol):
    """后端策略协议。

    - name: 策略名，用于日志与失败记录。
    - timeout: 单次 attempt 的超时（秒），由编排器强制执行。
    - attempt(req): 尝试一次调用，返回 OperationResult 或 StrategyFailure。
    """

    name: str
    timeout: float

    async def attempt(self, request: OperationRequest) -> Outcome:
        ...


class HttpBackend:
    """基于 httpx.AsyncClient 的后端基类。

    子类只需要实现 attempt()，用 _request / _request_json 访问上游即可；
    网络错误、429、非 2xx 与非法 JSON 会被统一转换为对应的业务异常。
    """

    name = "http"
    base_url = ""
    headers: Dict[str, str] = {}

    def __init__(self, timeout: float = 15.0, base_url: Optional[str] = None):
        self.timeout = timeout
        if base_url:
            self.base_url = base_url

    async def attempt(self, request: OperationRequest) -> Outcome:
        raise NotImplementedError

    def result(self, **data: Any) -> OperationResult:
        return OperationResult(backend=self.name, data=data)

    def fail(self, reason: str) -> StrategyFailure:
        return StrategyFailure(strategy=self.name, reason=reason)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {"User-Agent": DEFAULT_USER_AGENT, **self.headers, **(kwargs.pop("headers", None) or {})}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, trust_env=False, follow_redirects=True) as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(code="UPSTREAM_TIMEOUT", message=f"{self.name} timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=f"{self.name}: {e}")
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=f"{self.name} returned HTTP {resp.status_code}",
                http_status=resp.status_code,
            )
        return resp

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        resp = await self._request(method, url, **kwargs)
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError):
            raise BackendError(code="MALFORMED_RESPONSE", message=f"{self.name} returned non-JSON payload")

    @staticmethod
    def _require(value: Any, message: str) -> Any:
        """上游字段缺失时抛 BackendError，用于把“结构不符”归一为策略失败。"""

        if value in (None, "", [], {}):
            raise BackendError(code="MALFORMED_RESPONSE", message=message)
        return value
