"""Tests for process orchestration and HTTP routing in the main module."""

import sys
from pathlib import Path
from unittest.mock import Mock, patch

from prometheus_client import CollectorRegistry, Gauge

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from teamcity_exporter import __version__
from teamcity_exporter.config import Config
from teamcity_exporter.errors import ApiError, AuthenticationError, ConfigurationError
from teamcity_exporter.main import create_app, create_registry, run_exporter


def _config() -> Config:
    return Config(api_url="http://teamcity.local/", api_login="user", api_password="secret")


def _call(app, path: str):
    start_response = Mock()
    environ = {"REQUEST_METHOD": "GET", "PATH_INFO": path, "QUERY_STRING": ""}
    body = b"".join(app(environ, start_response))
    return start_response.call_args.args[0], body


def test_create_app_serves_metrics_on_metric_path():
    """Verify the configured metric path returns the registry exposition."""
    registry = CollectorRegistry()
    Gauge("probe_value", "test gauge", registry=registry).set(3)

    status, body = _call(create_app(registry, "/metrics"), "/metrics")

    assert status.startswith("200")
    assert b"probe_value 3.0" in body


def test_create_app_serves_landing_page():
    """Verify / returns a landing page linking the metric path."""
    status, body = _call(create_app(CollectorRegistry(), "/teamcity"), "/")

    assert status.startswith("200")
    assert b"href='/teamcity'" in body
    assert __version__.encode() in body


def test_create_app_unknown_path_returns_404():
    """Verify unknown routes are rejected."""
    status, _ = _call(create_app(CollectorRegistry(), "/metrics"), "/other")

    assert status.startswith("404")


def test_create_registry_registers_teamcity_collector():
    """Verify the registry exposes the TeamCity families without scraping at startup."""
    with patch("teamcity_exporter.main.TeamCityClient") as client_ctor:
        client_ctor.return_value.get_server_info.side_effect = ApiError("Connection refused")
        registry = create_registry(_config())

    client_ctor.assert_called_once()
    client_ctor.return_value.get_server_info.assert_not_called()
    assert registry.get_sample_value("teamcity_up") == 0.0


def test_create_registry_exposes_build_info_with_version():
    """Verify the registry carries a constant build info sample labeled with the version."""
    with patch("teamcity_exporter.main.TeamCityClient") as client_ctor:
        client_ctor.return_value.get_server_info.side_effect = ApiError("Connection refused")
        registry = create_registry(_config())

    build_info = [m for m in registry.collect() if m.name == "teamcity_queue_exporter_build"]

    assert len(build_info) == 1
    sample = build_info[0].samples[0]
    assert sample.name == "teamcity_queue_exporter_build_info"
    assert sample.labels["version"] == __version__
    assert sample.value == 1.0


def test_run_exporter_success_wires_components():
    """Verify orchestration loads config, builds the registry and serves it."""
    config = _config()
    registry = CollectorRegistry()

    with patch("teamcity_exporter.main.load_config", return_value=config) as load_config_mock, patch(
        "teamcity_exporter.main.create_registry", return_value=registry
    ) as registry_mock, patch("teamcity_exporter.main.serve") as serve_mock, patch(
        "teamcity_exporter.main.configure_logging"
    ):
        exit_code = run_exporter(["--listen-address", ":9000"])

    assert exit_code == 0
    load_config_mock.assert_called_once_with(listen_address=":9000", metric_path=None, debug=False)
    registry_mock.assert_called_once_with(config)
    serve_mock.assert_called_once_with(config, registry)


def test_run_exporter_keyboard_interrupt_exits_cleanly():
    """Verify Ctrl-C shuts the exporter down with exit code 0."""
    with patch("teamcity_exporter.main.load_config", return_value=_config()), patch(
        "teamcity_exporter.main.create_registry"
    ), patch("teamcity_exporter.main.serve", side_effect=KeyboardInterrupt), patch(
        "teamcity_exporter.main.configure_logging"
    ):
        assert run_exporter([]) == 0


def test_run_exporter_configuration_error_returns_config_exit_code():
    """Verify configuration failures map to exit code 2."""
    with patch(
        "teamcity_exporter.main.load_config",
        side_effect=ConfigurationError("API URL must be defined."),
    ), patch("teamcity_exporter.main.configure_logging"):
        assert run_exporter([]) == 2


def test_run_exporter_missing_credentials_returns_auth_exit_code():
    """Verify missing credentials map to exit code 3."""
    with patch(
        "teamcity_exporter.main.load_config",
        side_effect=AuthenticationError("API login must be defined."),
    ), patch("teamcity_exporter.main.configure_logging"):
        assert run_exporter([]) == 3


def test_run_exporter_unexpected_error_returns_generic_exit_code():
    """Verify unexpected exceptions map to exit code 1."""
    with patch("teamcity_exporter.main.parse_args", side_effect=RuntimeError("boom")):
        assert run_exporter([]) == 1
