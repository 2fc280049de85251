from __future__ import annotations

import dataclasses
import importlib

import pytest

import imagerelay.config as config


def test_settings_reads_queue_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("USE_QUEUE", "true")
    monkeypatch.setenv("WAIT_TIME_SECONDS", "5")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6380/1")
    config.get_settings.cache_clear()

    reloaded = importlib.reload(config)

    try:
        assert reloaded.settings.use_queue is True
        assert reloaded.settings.wait_time_seconds == 5
        assert reloaded.settings.rate_window_seconds == pytest.approx(6.0)
        assert reloaded.settings.broker_url == "redis://localhost:6380/1"
    finally:
        monkeypatch.undo()
        reloaded.get_settings.cache_clear()
        importlib.reload(config)


def test_settings_are_immutable() -> None:
    settings = config.Settings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.port = 1  # type: ignore[misc]


def test_validate_rejects_ssl_without_certificates() -> None:
    settings = config.Settings(ssl_enabled=True, ssl_key_path=None, ssl_cert_path=None)
    with pytest.raises(RuntimeError, match="certificate paths"):
        settings.validate()


def test_validate_accepts_ssl_with_certificates() -> None:
    settings = config.Settings(ssl_enabled=True, ssl_key_path="key.pem", ssl_cert_path="cert.pem")
    settings.validate()
