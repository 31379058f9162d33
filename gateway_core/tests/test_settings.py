import pytest
from pydantic import ValidationError

from gateway_core.config.settings import Settings


def test_defaults():
    s = Settings()
    assert s.port == 4000
    assert s.max_history_entries == 20
    assert s.routes_file.endswith("routes.yaml")


def test_history_size_must_be_even():
    with pytest.raises(ValidationError):
        Settings(max_history_entries=21)


def test_log_level_normalized():
    assert Settings(log_level="debug").log_level == "DEBUG"


def test_yaml_then_env_priority(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("port: 5000\ncreator: From Yaml\nfamily_order:\n  chat: [deepinfra]\n", encoding="utf-8")
    monkeypatch.setenv("GATEWAY_CONFIG_FILE", str(cfg))
    s = Settings()
    assert s.port == 5000
    assert s.creator == "From Yaml"
    assert s.family_order == {"chat": ["deepinfra"]}

    monkeypatch.setenv("GATEWAY_PORT", "6000")
    assert Settings().port == 6000
    assert Settings(port=7000).port == 7000


def test_public_view_hides_credentials():
    view = Settings(genius_token="secret", huggingface_token="hf").public_view()
    assert "secret" not in str(view)
    assert "hf" not in view.values()
