"""Tests for configuration, app assembly and the entry point."""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from anycrawl_mcp.__main__ import main
from anycrawl_mcp.config import DEFAULT_BASE_URL, ServerConfig, configure_logging, load_config
from anycrawl_mcp.server import _uvicorn_log_level, build_app, build_engine_factory

ENV_VARS = [
    "ANYCRAWL_API_KEY",
    "ANYCRAWL_BASE_URL",
    "ANYCRAWL_MODE",
    "ANYCRAWL_HOST",
    "ANYCRAWL_PORT",
    "LOG_LEVEL",
    "ANYCRAWL_SESSION_GRACE_SECONDS",
    "ANYCRAWL_CLEANUP_INTERVAL_SECONDS",
    "ANYCRAWL_REQUEST_TIMEOUT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self) -> None:
        config = load_config()

        assert config.api_key is None
        assert config.base_url == DEFAULT_BASE_URL
        assert config.mode == "STDIO"
        assert config.port == 3000
        assert config.session_grace_seconds == 300.0
        assert config.cleanup_interval_seconds == 30.0

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANYCRAWL_API_KEY", "secret")
        monkeypatch.setenv("ANYCRAWL_BASE_URL", "http://localhost:8080")
        monkeypatch.setenv("ANYCRAWL_MODE", "combined")
        monkeypatch.setenv("ANYCRAWL_PORT", "8000")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ANYCRAWL_SESSION_GRACE_SECONDS", "60")

        config = load_config()

        assert config.api_key == "secret"
        assert config.base_url == "http://localhost:8080"
        assert config.mode == "COMBINED"
        assert config.port == 8000
        assert config.log_level == "debug"
        assert config.session_grace_seconds == 60.0

    def test_invalid_number_names_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANYCRAWL_PORT", "eighty")

        with pytest.raises(ValueError, match="ANYCRAWL_PORT"):
            load_config()


class TestValidate:
    """Tests for ServerConfig.validate."""

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValueError, match="ANYCRAWL_MODE"):
            ServerConfig(mode="FTP", api_key="k").validate()

    @pytest.mark.parametrize("mode", ["STDIO", "CLOUD_SERVICE", "HTTP_STREAMABLE_SERVER", "SSE_SERVER"])
    def test_api_key_required(self, mode: str) -> None:
        with pytest.raises(ValueError, match="ANYCRAWL_API_KEY"):
            ServerConfig(mode=mode).validate()

    def test_combined_needs_no_api_key(self) -> None:
        ServerConfig(mode="COMBINED").validate()


class TestLogging:
    """Tests for logging configuration."""

    def test_warn_alias(self) -> None:
        with patch("anycrawl_mcp.config.logging.basicConfig") as mock_basic:
            configure_logging("warn")

        assert mock_basic.call_args.kwargs["level"] == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        with patch("anycrawl_mcp.config.logging.basicConfig") as mock_basic:
            configure_logging("chatty")

        assert mock_basic.call_args.kwargs["level"] == logging.INFO

    @pytest.mark.parametrize(("level", "expected"), [("warn", "warning"), ("debug", "debug"), ("loud", "info")])
    def test_uvicorn_level(self, level: str, expected: str) -> None:
        assert _uvicorn_log_level(level) == expected


class TestBuildApp:
    """Tests for build_app and build_engine_factory."""

    def test_stdio_has_no_app(self) -> None:
        with pytest.raises(ValueError, match="STDIO"):
            build_app(ServerConfig(mode="STDIO", api_key="k"))

    def test_per_tenant_engines_use_tenant_key(self) -> None:
        """Test that COMBINED engines authenticate with the tenant's own key."""
        factory = build_engine_factory(ServerConfig(mode="COMBINED"), per_tenant=True)

        engine = factory("tenant-key", False)

        client = engine.invoker.provider
        assert client.session.headers["Authorization"] == "Bearer tenant-key"
        engine.close()

    def test_shared_key_engines(self) -> None:
        factory = build_engine_factory(ServerConfig(mode="CLOUD_SERVICE", api_key="configured"))

        engine = factory("default", True)

        assert engine.stateless is True
        assert engine.invoker.provider.session.headers["Authorization"] == "Bearer configured"
        engine.close()


class TestMain:
    """Tests for the command line entry point."""

    def test_argv_overrides_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANYCRAWL_API_KEY", "secret")
        monkeypatch.setattr("sys.argv", ["anycrawl-mcp", "sse_server", "127.0.0.1", "9000"])

        with patch("anycrawl_mcp.__main__.run_server") as mock_run, patch("anycrawl_mcp.__main__.configure_logging"):
            main()

        config = mock_run.call_args.args[0]
        assert config.mode == "SSE_SERVER"
        assert config.host == "127.0.0.1"
        assert config.port == 9000

    def test_missing_api_key_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.argv", ["anycrawl-mcp"])

        with patch("anycrawl_mcp.__main__.run_server") as mock_run, patch("anycrawl_mcp.__main__.configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
        mock_run.assert_not_called()
