"""Tests for configuration loading and the process entry point."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

import src.main
from config.settings import DEVELOPMENT_AUTH_SECRET, Settings


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_development_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TRAVAULT_AUTH_SECRET", raising=False)
        monkeypatch.delenv("TRAVAULT_ENV", raising=False)
        loaded = Settings(_env_file=None)
        assert not loaded.is_production
        assert loaded.auth_secret == DEVELOPMENT_AUTH_SECRET

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRAVAULT_API_PORT", "9001")
        monkeypatch.setenv("TRAVAULT_CORS_ORIGINS", "https://a.example, https://b.example")
        loaded = Settings(_env_file=None)
        assert loaded.api_port == 9001
        assert loaded.cors_origin_list == ["https://a.example", "https://b.example"]

    @pytest.mark.parametrize("secret", [DEVELOPMENT_AUTH_SECRET, "", "   "])
    def test_production_rejects_a_public_secret(self, secret: str) -> None:
        with pytest.raises(ValidationError, match="TRAVAULT_AUTH_SECRET"):
            Settings(_env_file=None, env="production", auth_secret=secret)

    def test_production_with_private_secret(self) -> None:
        loaded = Settings(_env_file=None, env="production", auth_secret="a-long-private-value")
        assert loaded.is_production

    def test_production_reads_the_secret_from_the_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TRAVAULT_AUTH_SECRET", raising=False)
        monkeypatch.setenv("TRAVAULT_ENV", "production")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)
        monkeypatch.setenv("TRAVAULT_AUTH_SECRET", "from-the-vault")
        assert Settings(_env_file=None).auth_secret == "from-the-vault"


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


class TestEntryPoint:
    @pytest.mark.parametrize(
        ("name", "level"),
        [("INFO", logging.INFO), ("debug", logging.DEBUG), (" warning ", logging.WARNING), ("loud", logging.INFO)],
    )
    def test_log_level_names(self, name: str, level: int) -> None:
        assert src.main._log_level(name) == level

    def test_logging_configures_at_every_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("DEBUG", "ERROR", "verbose"):
            monkeypatch.setattr(src.main.settings, "log_level", name)
            src.main._configure_logging()

    def test_run_serves_on_configured_address(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[tuple[tuple, dict]] = []
        monkeypatch.setattr("uvicorn.run", lambda *args, **kwargs: calls.append((args, kwargs)))
        monkeypatch.setattr(src.main.settings, "api_host", "127.0.0.1")
        monkeypatch.setattr(src.main.settings, "api_port", 8765)

        src.main.run()

        assert calls == [(("src.main:app",), {"host": "127.0.0.1", "port": 8765})]
