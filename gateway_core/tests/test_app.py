from fastapi.testclient import TestClient

from gateway_core.api.app import create_app, load_route_table
from gateway_core.config.settings import Settings
from gateway_core.domain.exceptions import RouteLoadError
from gateway_core.domain.models import OperationResult, StrategyFailure
from gateway_core.infrastructure.storage.memory_store import InMemoryConversationStore


ROUTES = {
    "ai": {
        "chat": "gateway_core.handlers.ai:chat",
        "ladybug": "gateway_core.handlers.ai:chat",
        "imagine": "gateway_core.handlers.ai:imagine",
    },
    "search": {
        "google": "gateway_core.handlers.search:google",
        "lyrics": "gateway_core.handlers.search:lyrics",
    },
    "tools": {
        "weather": "gateway_core.handlers.tools:weather",
        "qrcode": "gateway_core.handlers.tools:qrcode",
    },
    "test": {"hello": "gateway_core.handlers.misc:hello"},
}


class EchoChat:
    name = "echo"
    timeout = 1.0

    def __init__(self):
        self.histories = []

    async def attempt(self, request):
        self.histories.append(len(request.history))
        return OperationResult(backend=self.name, data={"response": f"echo: {request.get('text')}"})


class Counting:
    timeout = 1.0

    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.calls = 0
        self.params = None

    async def attempt(self, request):
        self.calls += 1
        self.params = dict(request.params)
        if self.fail:
            return StrategyFailure(self.name, f"{self.name} is down")
        return OperationResult(backend=self.name, data={"ok": True})


def make_client(routes=ROUTES, debug=False, **families):
    strategies = {
        "chat": [EchoChat()],
        "imagine": [Counting("pollinations")],
        "search.google": [Counting("google", fail=True), Counting("duckduckgo", fail=True)],
        "lookup.lyrics": [Counting("lrclib")],
        "tools.weather": [Counting("wttr")],
        "tools.qrcode": [Counting("qrcode")],
    }
    strategies.update(families)
    cfg = Settings(creator="Tester", debug=debug, overall_timeout=0, max_history_entries=20)
    app = create_app(cfg, routes=routes, strategies=strategies, store=InMemoryConversationStore(max_entries=20))
    return TestClient(app), strategies


def test_missing_parameter_is_400_without_backend_call():
    client, strategies = make_client()
    r = client.get("/tools/weather")
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["status"] == "error"
    assert body["creator"] == "Tester"
    assert body["example"].startswith("/tools/weather")
    assert strategies["tools.weather"][0].calls == 0


def test_success_is_enveloped():
    client, strategies = make_client()
    r = client.get("/tools/weather", params={"city": "London"})
    assert r.status_code == 200
    body = r.json()
    assert body == {
        "status": "success",
        "creator": "Tester",
        "success": True,
        "backend": "wttr",
        "data": {"ok": True},
    }
    assert strategies["tools.weather"][0].params == {"city": "London"}


def test_unknown_path_is_404():
    client, _ = make_client()
    r = client.get("/does/not/exist")
    assert r.status_code == 404
    body = r.json()
    assert body["success"] is False
    assert body["path"] == "/does/not/exist"
    assert "/api/routes" in body["suggestion"]


def test_all_backends_failed_is_500_with_reasons():
    client, _ = make_client()
    r = client.get("/search/google", params={"q": "python"})
    assert r.status_code == 500
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "ALL_BACKENDS_FAILED"
    assert [f["strategy"] for f in body["failures"]] == ["google", "duckduckgo"]


def test_chat_history_and_clear():
    client, strategies = make_client()
    echo = strategies["chat"][0]

    first = client.get("/ai/chat", params={"text": "hi", "userId": "u1"}).json()
    assert first["data"]["response"] == "echo: hi"
    assert first["data"]["conversation_id"] == "u1"
    assert first["data"]["message_count"] == 2

    second = client.post("/ai/chat", json={"message": "again", "userId": "u1"}).json()
    assert second["data"]["message"] == "again"
    assert second["data"]["message_count"] == 4

    other = client.get("/ai/ladybug", params={"text": "hey"}).json()
    assert other["data"]["conversation_id"] == "default"
    assert other["data"]["message_count"] == 2

    cleared = client.get("/ai/chat", params={"text": "fresh", "userId": "u1", "clearHistory": "true"}).json()
    assert cleared["data"]["message_count"] == 2
    assert echo.histories == [0, 2, 0, 0]


def test_failed_chat_leaves_history_untouched():
    store = InMemoryConversationStore(max_entries=20)
    cfg = Settings(creator="Tester", overall_timeout=0)
    app = create_app(cfg, routes=ROUTES, strategies={"chat": [Counting("airforce", fail=True)]}, store=store)
    client = TestClient(app)
    r = client.get("/ai/chat", params={"text": "hi", "userId": "u2"})
    assert r.status_code == 500
    assert store.keys() == ()


def test_chat_missing_text():
    client, _ = make_client()
    r = client.get("/ai/chat")
    assert r.status_code == 400
    assert r.json()["message"] == "Text or message parameter is required"


def test_form_body_parameters():
    client, strategies = make_client()
    r = client.post("/search/lyrics", data={"song": "Hello", "artist": "Adele"})
    assert r.status_code == 200
    assert strategies["lookup.lyrics"][0].params == {"song": "Hello", "artist": "Adele"}


def test_imagine_rejects_non_integer_size():
    client, strategies = make_client()
    r = client.get("/ai/imagine", params={"prompt": "cat", "width": "wide"})
    assert r.status_code == 400
    assert strategies["imagine"][0].calls == 0


def test_handler_crash_is_generic_500():
    async def boom(ctx):
        raise RuntimeError("secret detail")

    routes = {"test": {"boom": boom}}
    client, _ = make_client(routes=routes)
    r = client.get("/test/boom")
    assert r.status_code == 500
    body = r.json()
    assert body["message"] == "Internal server error"
    assert body["error"] == "Something went wrong"

    debug_client, _ = make_client(routes=routes, debug=True)
    assert debug_client.get("/test/boom").json()["error"] == "secret detail"


def test_diagnostics():
    client, _ = make_client()

    routes = client.get("/api/routes").json()
    paths = [r["path"] for r in routes["routes"]]
    assert paths == sorted(paths)
    assert routes["total"] == 8
    assert routes["routes"][0]["methods"] == ["GET", "POST"]

    status = client.get("/api/status").json()
    assert status["status"] == "online"
    assert status["routes"] == 8
    assert status["load"]["loaded"] == 8
    assert status["load"]["failed"] == []
    assert "/tools/qrcode" in status["load"]["paths"]
    assert "chat" in status["families"]

    assert client.get("/ping").json()["message"] == "pong"
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").json()["routes"] == "/api/routes"

    public = client.get("/api/settings").json()["settings"]
    assert public["creator"] == "Tester"
    assert not any("token" in key or "api_key" in key for key in public)


def test_hello_and_reload():
    client, _ = make_client()
    assert client.get("/test/hello", params={"name": "Ada"}).json()["message"] == "Hello Ada!"

    r = client.post("/api/routes/reload", params={"unit": "test/hello"})
    assert r.status_code == 200
    assert r.json()["path"] == "/test/hello"
    assert client.get("/test/hello").json()["message"] == "Hello World!"

    assert client.post("/api/routes/reload", params={"unit": "nope/x"}).status_code == 404
    assert client.post("/api/routes/reload").status_code == 400


def test_load_route_table(tmp_path):
    path = tmp_path / "routes.yaml"
    path.write_text("test:\n  hello: gateway_core.handlers.misc:hello\n", encoding="utf-8")
    assert load_route_table(str(path)) == {"test": {"hello": "gateway_core.handlers.misc:hello"}}

    try:
        load_route_table(str(tmp_path / "missing.yaml"))
    except RouteLoadError as exc:
        assert "cannot read" in exc.reason
    else:
        raise AssertionError("missing route table must fail")


def test_bundled_route_table_loads_completely():
    client, _ = make_client(routes=None)
    routes = client.get("/api/routes").json()
    assert routes["failed"] == []
    assert "/ai/stream" in [r["path"] for r in routes["routes"]]


def test_stream_emits_sse_and_done():
    from gateway_core.backends.chat import AirforceChat
    from gateway_core.domain.exceptions import ApiError

    class Streamer(AirforceChat):
        async def stream(self, request):
            yield "Hel"
            yield "lo"

    class BrokenStreamer(AirforceChat):
        async def stream(self, request):
            yield "partial"
            raise ApiError(code="API_ERROR", message="airforce returned HTTP 503", http_status=503)

    routes = {"ai": {"stream": "gateway_core.handlers.ai:stream"}}
    client, _ = make_client(routes=routes, chat=[Streamer()])
    r = client.get("/ai/stream", params={"text": "hi"})
    assert r.headers["content-type"].startswith("text/event-stream")
    assert 'data: {"content": "Hel"}' in r.text
    assert r.text.endswith("data: [DONE]\n\n")

    client, _ = make_client(routes=routes, chat=[BrokenStreamer()])
    text = client.get("/ai/stream", params={"text": "hi"}).text
    assert '"error": "airforce returned HTTP 503"' in text
    assert text.endswith("data: [DONE]\n\n")

    client, _ = make_client(routes=routes, chat=[EchoChat()])
    assert client.get("/ai/stream", params={"text": "hi"}).status_code == 503


def test_multipart_form_parameters():
    client, strategies = make_client()
    r = client.post(
        "/search/lyrics",
        files={"song": (None, "Hello"), "cover": ("cover.png", b"\x89PNG", "image/png")},
    )
    assert r.status_code == 200
    assert strategies["lookup.lyrics"][0].params == {"song": "Hello"}


def test_json_values_are_coerced_to_strings():
    client, strategies = make_client()
    r = client.post("/ai/imagine", json={"prompt": ["a", "cat"]})
    assert r.status_code == 400
    assert strategies["imagine"][0].calls == 0

    r = client.post("/tools/weather", json={"city": 42})
    assert r.status_code == 200
    assert strategies["tools.weather"][0].params == {"city": "42"}


def test_invalid_json_body_is_400():
    client, strategies = make_client()
    r = client.post("/tools/weather", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_BODY"
    assert strategies["tools.weather"][0].calls == 0


def test_qrcode_route_clamps_size():
    client, strategies = make_client()
    r = client.get("/tools/qrcode", params={"text": "Hello World", "size": "5000", "dark": "#112233"})
    assert r.status_code == 200
    assert strategies["tools.qrcode"][0].params == {"text": "Hello World", "size": 2048, "dark": "#112233"}

    assert client.get("/tools/qrcode", params={"text": "x", "size": "big"}).status_code == 400
    r = client.get("/tools/qrcode")
    assert r.status_code == 400
    assert r.json()["example"].startswith("/tools/qrcode")


def test_stream_survives_unexpected_backend_error():
    from gateway_core.backends.chat import AirforceChat

    class CrashingStreamer(AirforceChat):
        async def stream(self, request):
            yield "partial"
            raise AttributeError("'int' object has no attribute 'get'")

    routes = {"ai": {"stream": "gateway_core.handlers.ai:stream"}}
    client, _ = make_client(routes=routes, chat=[CrashingStreamer()])
    text = client.get("/ai/stream", params={"text": "hi"}).text
    assert 'data: {"content": "partial"}' in text
    assert '"error": "Something went wrong"' in text
    assert text.endswith("data: [DONE]\n\n")

    client, _ = make_client(routes=routes, debug=True, chat=[CrashingStreamer()])
    assert "has no attribute" in client.get("/ai/stream", params={"text": "hi"}).text
