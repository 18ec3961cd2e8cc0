"""Unit tests for imgrelay.main — application factory and lifespan.

Covers:
  - create_app() returns independent FastAPI instances with ready=False
  - an injected Config is used as-is; otherwise load_config() runs at startup
  - startup populates app.state (config, allowlist, http_client) and sets ready
  - shutdown clears ready and closes the shared HTTP client
  - an invalid config aborts startup with SystemExit before ready is set
  - API docs are only served with DEBUG=true
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from imgrelay.config import Config, CorsConfig
from imgrelay.cors.allowlist import OriginAllowlist
from imgrelay.main import create_app, lifespan

ALLOWED = "https://app.example.com"


def _stub_config() -> Config:
    """Return a Config with one allowed origin (no file I/O)."""
    return Config(cors=CorsConfig(allowed_origins=(ALLOWED,)))


# ─── create_app() ─────────────────────────────────────────────────────────────


class TestCreateAppFactory:
    def test_returns_fastapi_instance(self) -> None:
        assert isinstance(create_app(), FastAPI)

    def test_independent_instances(self) -> None:
        assert create_app() is not create_app()

    def test_ready_false_before_lifespan(self) -> None:
        assert create_app().state.ready is False

    def test_injected_config_stored(self) -> None:
        config = _stub_config()
        assert create_app(config=config).state.config is config

    def test_docs_disabled_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEBUG", raising=False)
        with TestClient(create_app(config=_stub_config())) as client:
            assert client.get("/docs").status_code == 404

    def test_docs_enabled_with_debug(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEBUG", "true")
        with TestClient(create_app(config=_stub_config())) as client:
            assert client.get("/docs").status_code == 200


# ─── Startup ──────────────────────────────────────────────────────────────────


class TestStartup:
    def test_state_populated(self) -> None:
        application = create_app(config=_stub_config())
        with TestClient(application):
            assert application.state.ready is True
            assert isinstance(application.state.allowlist, OriginAllowlist)
            assert list(application.state.allowlist) == [ALLOWED]
            assert isinstance(application.state.http_client, httpx.AsyncClient)

    def test_load_config_called_without_injected_config(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[int] = []

        def fake_load_config() -> Config:
            calls.append(1)
            return _stub_config()

        monkeypatch.setattr("imgrelay.main.load_config", fake_load_config)
        application = create_app()
        with TestClient(application):
            assert application.state.config.cors.allowed_origins == (ALLOWED,)
        assert calls == [1]

    def test_injected_config_skips_load_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail() -> Config:
            raise AssertionError("load_config must not be called")

        monkeypatch.setattr("imgrelay.main.load_config", fail)
        with TestClient(create_app(config=_stub_config())) as client:
            assert client.get("/health").status_code == 200

    @pytest.mark.asyncio
    async def test_invalid_config_aborts_startup(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_FILE_SIZE", "lots")
        application = create_app()
        with pytest.raises(SystemExit):
            async with lifespan(application):
                pass
        assert application.state.ready is False


# ─── Shutdown ─────────────────────────────────────────────────────────────────


class TestShutdown:
    def test_ready_cleared_and_client_closed(self) -> None:
        application = create_app(config=_stub_config())
        with TestClient(application):
            client = application.state.http_client
        assert application.state.ready is False
        assert client.is_closed
