"""后端降级编排器。

对一个操作族，按配置顺序逐个尝试后端策略：

1. 每个策略单独计时（strategy.timeout），超时与失败同等对待；
2. 第一个成功的结果立即返回，后面的策略不会再被调用；
3. 失败（超时、非 2xx、结构不符、任何异常或返回 StrategyFailure）记录后继续下一个；
4. 全部失败时抛出 AllBackendsFailed，携带按顺序记录的每一条失败。

可选的 overall_timeout 限制整个 resolve 的耗时：截止时间之后剩余的策略不再调用，
直接记为超时失败，因此失败列表的长度始终等于策略数量。

编排器本身不读写对话历史，调用方在拿到成功结果后自行写入。
"""

import asyncio
import time
from typing import Dict, List, Mapping, Optional, Sequence

from gateway_core.backends.base import BackendStrategy
from gateway_core.domain.exceptions import AllBackendsFailed, UnknownFamilyError
from gateway_core.domain.models import OperationRequest, OperationResult, StrategyFailure, failure_reason
from gateway_core.infrastructure.logging.logger import logger


class FallbackOrchestrator:
    def __init__(
        self,
        strategies: Mapping[str, Sequence[BackendStrategy]],
        overall_timeout: Optional[float] = None,
    ):
        self._families: Dict[str, List[BackendStrategy]] = {k: list(v) for k, v in strategies.items()}
        self._overall_timeout = overall_timeout or None

    @property
    def families(self) -> List[str]:
        return sorted(self._families)

    def strategies_for(self, family: str) -> List[BackendStrategy]:
        try:
            return list(self._families[family])
        except KeyError:
            raise UnknownFamilyError(family)

    async def resolve(self, family: str, request: OperationRequest) -> OperationResult:
        strategies = self.strategies_for(family)
        failures: List[StrategyFailure] = []
        started = time.monotonic()
        deadline = started + self._overall_timeout if self._overall_timeout else None

        for strategy in strategies:
            timeout = strategy.timeout
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    failures.append(StrategyFailure(strategy.name, "skipped: overall timeout exceeded"))
                    continue
                timeout = min(timeout, remaining)

            outcome = await self._attempt(strategy, request, timeout)
            if isinstance(outcome, OperationResult):
                logger.info(
                    "Backend succeeded",
                    extra={"extra": {
                        "family": family,
                        "backend": strategy.name,
                        "failed_before": len(failures),
                        "elapsed_seconds": round(time.monotonic() - started, 3),
                    }},
                )
                return outcome
            failures.append(outcome)
            logger.warning(
                "Backend failed",
                extra={"extra": {"family": family, "backend": outcome.strategy, "reason": outcome.reason}},
            )

        logger.error(
            "All backends failed",
            extra={"extra": {
                "family": family,
                "failures": [{"strategy": f.strategy, "reason": f.reason} for f in failures],
            }},
        )
        raise AllBackendsFailed(family, failures)

    @staticmethod
    async def _attempt(strategy: BackendStrategy, request: OperationRequest, timeout: float):
        """调用单个策略，返回 OperationResult 或 StrategyFailure，不向外抛业务异常。"""

        try:
            outcome = await asyncio.wait_for(strategy.attempt(request), timeout=timeout)
        except asyncio.TimeoutError:
            return StrategyFailure(strategy.name, f"timed out after {timeout:.1f}s")
        except Exception as exc:
            return StrategyFailure(strategy.name, failure_reason(exc))

        if isinstance(outcome, StrategyFailure):
            return outcome
        if isinstance(outcome, OperationResult) and outcome.success:
            return outcome
        return StrategyFailure(strategy.name, f"malformed result: {type(outcome).__name__}")
