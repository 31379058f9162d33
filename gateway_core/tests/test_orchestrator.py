import asyncio
import time

import pytest

from gateway_core.domain.exceptions import AllBackendsFailed, NetworkError, UnknownFamilyError
from gateway_core.domain.models import OperationRequest, OperationResult, StrategyFailure
from gateway_core.orchestrator import FallbackOrchestrator


class FakeStrategy:
    def __init__(self, name, outcome=None, exc=None, delay=0.0, timeout=1.0):
        self.name = name
        self.timeout = timeout
        self.calls = 0
        self._outcome = outcome
        self._exc = exc
        self._delay = delay

    async def attempt(self, request):
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._exc is not None:
            raise self._exc
        if self._outcome is not None:
            return self._outcome
        return OperationResult(backend=self.name, data={"value": self.name})


def run(orch, family="chat", **params):
    return asyncio.run(orch.resolve(family, OperationRequest(params=params or {"text": "hi"})))


def test_first_success_short_circuits():
    a, b, c = FakeStrategy("a"), FakeStrategy("b"), FakeStrategy("c")
    result = run(FallbackOrchestrator({"chat": [a, b, c]}))
    assert result.backend == "a"
    assert (a.calls, b.calls, c.calls) == (1, 0, 0)


def test_failures_then_success():
    a = FakeStrategy("a", exc=NetworkError(code="NETWORK_ERROR", message="a: connection refused"))
    b = FakeStrategy("b", outcome=StrategyFailure("b", "no results"))
    c = FakeStrategy("c")
    d = FakeStrategy("d")
    result = run(FallbackOrchestrator({"chat": [a, b, c, d]}))
    assert result.backend == "c"
    assert result.data == {"value": "c"}
    assert (a.calls, b.calls, c.calls, d.calls) == (1, 1, 1, 0)


def test_all_fail_records_every_strategy_in_order():
    strategies = [
        FakeStrategy("a", exc=RuntimeError("boom")),
        FakeStrategy("b", outcome=StrategyFailure("b", "empty")),
        FakeStrategy("c", outcome="not a result"),
    ]
    with pytest.raises(AllBackendsFailed) as ei:
        run(FallbackOrchestrator({"chat": strategies}))
    err = ei.value
    assert [f.strategy for f in err.failures] == ["a", "b", "c"]
    assert err.failures[0].reason == "boom"
    assert err.failures[1].reason == "empty"
    assert err.failures[2].reason == "malformed result: str"
    payload = err.to_payload()
    assert payload["success"] is False
    assert payload["family"] == "chat"
    assert len(payload["failures"]) == 3
    assert err.http_status == 500


def test_timeout_counts_as_failure():
    slow = FakeStrategy("slow", delay=1.0, timeout=0.05)
    fast = FakeStrategy("fast")
    result = run(FallbackOrchestrator({"chat": [slow, fast]}))
    assert result.backend == "fast"
    assert slow.calls == 1


def test_timeout_reason_is_recorded():
    slow = FakeStrategy("slow", delay=1.0, timeout=0.05)
    with pytest.raises(AllBackendsFailed) as ei:
        run(FallbackOrchestrator({"chat": [slow]}))
    assert ei.value.failures[0].reason.startswith("timed out after")


def test_overall_timeout_bounds_resolve():
    a = FakeStrategy("a", delay=1.0, timeout=1.0)
    b = FakeStrategy("b", delay=1.0, timeout=1.0)
    c = FakeStrategy("c", delay=1.0, timeout=1.0)
    started = time.monotonic()
    with pytest.raises(AllBackendsFailed) as ei:
        run(FallbackOrchestrator({"chat": [a, b, c]}, overall_timeout=0.1))
    assert time.monotonic() - started < 0.8
    assert [f.strategy for f in ei.value.failures] == ["a", "b", "c"]
    assert c.calls == 0 or ei.value.failures[2].reason.startswith("timed out")


def test_unknown_family():
    orch = FallbackOrchestrator({"chat": [FakeStrategy("a")]})
    with pytest.raises(UnknownFamilyError):
        run(orch, family="download.myspace")
    assert orch.families == ["chat"]


def test_request_is_not_mutated():
    seen = []

    class Recorder(FakeStrategy):
        async def attempt(self, request):
            seen.append(request)
            return StrategyFailure(self.name, "nope")

    req = OperationRequest(params={"text": "hi"})
    orch = FallbackOrchestrator({"chat": [Recorder("a"), Recorder("b"), FakeStrategy("c")]})
    asyncio.run(orch.resolve("chat", req))
    assert all(r is req for r in seen)
    assert dict(req.params) == {"text": "hi"}
    with pytest.raises(TypeError):
        req.params["text"] = "changed"
