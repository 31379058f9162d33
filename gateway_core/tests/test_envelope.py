import json

from gateway_core.api.envelope import EnvelopeJSONResponse, apply_envelope, envelope_response_class


def test_success_payload_is_wrapped():
    out = apply_envelope({"success": True, "data": {"x": 1}}, "Me")
    assert out == {"status": "success", "creator": "Me", "success": True, "data": {"x": 1}}


def test_failure_and_missing_success_are_errors():
    assert apply_envelope({"success": False, "message": "nope"}, "Me")["status"] == "error"
    assert apply_envelope({"message": "no marker"}, "Me")["status"] == "error"


def test_payload_fields_win():
    out = apply_envelope({"success": True, "status": "custom", "creator": "Other"}, "Me")
    assert out["status"] == "custom"
    assert out["creator"] == "Other"


def test_idempotent():
    once = apply_envelope({"success": True, "data": 1}, "Me")
    assert apply_envelope(once, "Me") == once


def test_non_object_passthrough():
    assert apply_envelope("plain text", "Me") == "plain text"
    assert apply_envelope([1, 2], "Me") == [1, 2]


def test_response_class_renders_envelope():
    cls = envelope_response_class("Tester")
    assert issubclass(cls, EnvelopeJSONResponse)
    body = json.loads(cls(content={"success": True}).body)
    assert body == {"status": "success", "creator": "Tester", "success": True}
