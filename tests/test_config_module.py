from __future__ import annotations

import json

import deck_export.config as cfg
from deck_export.browser.automation import BrowserConfig
from deck_export.models import RetryConfig


def test_load_config_default(tmp_path, monkeypatch):
    path = tmp_path / "missing" / "deck_export_config.json"
    monkeypatch.setattr(cfg, "CONFIG_PATH", path)
    data = cfg.load_config()
    assert data["log_level"] == "INFO"
    assert data["retry"]["max_retries"] == 3
    assert data["browser"]["timeout_s"] == 30.0


def test_save_and_load_config(tmp_path, monkeypatch):
    path = tmp_path / "deck_export_config.json"
    monkeypatch.setattr(cfg, "CONFIG_PATH", path)
    cfg.save_config({"retry": {"max_retries": 5}})
    loaded = cfg.load_config()
    assert loaded["retry"]["max_retries"] == 5
    # untouched keys of a nested section keep their defaults
    assert loaded["retry"]["backoff_factor"] == 2.0
    raw = json.loads(path.read_text())
    assert raw == {"retry": {"max_retries": 5}}


def test_load_config_ignores_garbage(tmp_path):
    path = tmp_path / "deck_export_config.json"
    path.write_text("{not json")
    assert cfg.load_config_at(path) == cfg.DEFAULT_CONFIG
    path.write_text(json.dumps(["not", "a", "mapping"]))
    assert cfg.load_config_at(path) == cfg.DEFAULT_CONFIG


def test_load_config_does_not_mutate_defaults(tmp_path):
    path = tmp_path / "deck_export_config.json"
    path.write_text(json.dumps({"browser": {"timeout_s": 5}}))
    loaded = cfg.load_config_at(path)
    assert loaded["browser"]["timeout_s"] == 5
    assert cfg.DEFAULT_CONFIG["browser"]["timeout_s"] == 30.0


def test_coerce_helpers():
    assert cfg.coerce_float("2.5", 1.0) == 2.5
    assert cfg.coerce_float("oops", 1.0) == 1.0
    assert cfg.coerce_float(-1, 1.0) == 1.0
    assert cfg.coerce_float(True, 1.0) == 1.0
    assert cfg.coerce_int("4", 3) == 4
    assert cfg.coerce_int(2.0, 3) == 2
    assert cfg.coerce_int(2.5, 3) == 3
    assert cfg.coerce_int(None, 3) == 3
    assert cfg.coerce_str(None) == ""
    assert cfg.coerce_str("  chrome ") == "chrome"


def test_section_returns_empty_mapping_for_missing_or_invalid():
    assert cfg.section({"retry": {"max_retries": 1}}, "retry") == {"max_retries": 1}
    assert cfg.section({"retry": "nope"}, "retry") == {}
    assert cfg.section(None, "retry") == {}


def test_retry_config_from_mapping():
    retry = RetryConfig.from_mapping(
        {
            "max_retries": "5",
            "initial_delay_s": 0.5,
            "max_delay_s": None,
            "backoff_factor": 0.1,
            "retryable_errors": ["Timeout", "browser", "bogus"],
        }
    )
    assert retry.max_retries == 5
    assert retry.initial_delay_s == 0.5
    assert retry.max_delay_s == 30.0
    assert retry.backoff_factor == 2.0
    assert retry.retryable_errors == frozenset({"timeout", "browser"})
    assert RetryConfig.from_mapping(None) == RetryConfig()


def test_browser_config_from_mapping():
    browser = BrowserConfig.from_mapping(
        {"executable_path": " /opt/chrome ", "timeout_s": "0", "interrupt_grace_s": "x"}
    )
    assert browser.executable_path == "/opt/chrome"
    assert browser.timeout_s == 30.0
    assert browser.interrupt_grace_s == 2.0
    assert BrowserConfig.from_mapping("garbage") == BrowserConfig()
