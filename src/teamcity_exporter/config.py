"""Configuration parsing and validation for the TeamCity queue exporter."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
from urllib.parse import urlparse

from .errors import AuthenticationError, ConfigurationError

DEFAULT_LISTEN_ADDRESS = ":9190"
DEFAULT_METRIC_PATH = "/metrics"
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_REASON = "There are no compatible or available agents for this build"
DEFAULT_POOL = "Default"

REASON_MODE_PREFIX = "prefix"
REASON_MODE_ENUM = "enum"
REASON_MODES = (REASON_MODE_PREFIX, REASON_MODE_ENUM)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    """Validated runtime settings used by the exporter."""

    api_url: str
    api_login: str
    api_password: str
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    metric_path: str = DEFAULT_METRIC_PATH
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    reason_mode: str = REASON_MODE_PREFIX
    default_reason: str = DEFAULT_REASON
    default_pool: str = DEFAULT_POOL
    os_flags: bool = True
    collect_agents: bool = True
    debug: bool = False


def _env(environ: Mapping[str, str], name: str) -> str:
    return environ.get(name, "").strip()


def _parse_bool(name: str, raw: str, default: bool) -> bool:
    if not raw:
        return default
    value = raw.lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value for '{name}': {raw!r}.")


def _parse_timeout(raw: str) -> float:
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        timeout = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for 'TE_TIMEOUT': {raw!r} is not a number.") from exc
    if timeout <= 0:
        raise ConfigurationError("Invalid value for 'TE_TIMEOUT': expected a number greater than 0.")
    return timeout


def parse_listen_address(listen_address: str) -> Tuple[str, int]:
    """Split a ``host:port`` listen address into its parts.

    An empty host (``":9190"``) means all interfaces.

    Raises:
        ConfigurationError: If the port is missing or not a valid TCP port.
    """
    host, sep, port_text = listen_address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"Listen address {listen_address!r} must be of the form 'host:port'.")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ConfigurationError(f"Listen address {listen_address!r} has an invalid port.") from exc
    if not 0 < port < 65536:
        raise ConfigurationError(f"Listen address {listen_address!r} has an out-of-range port.")
    return host.strip("[]"), port


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    listen_address: Optional[str] = None,
    metric_path: Optional[str] = None,
    debug: Optional[bool] = None,
) -> Config:
    """Build and validate exporter configuration from ``TE_*`` environment variables.

    Args:
        environ: Environment mapping; defaults to ``os.environ``.
        listen_address: Command-line override for ``TE_LISTEN_ADDRESS``.
        metric_path: Command-line override for ``TE_METRIC_PATH``.
        debug: Command-line override for ``TE_DEBUG``.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If a setting is missing or malformed.
        AuthenticationError: If ``TE_API_LOGIN`` or ``TE_API_PASSWORD`` is not configured.
    """
    env = os.environ if environ is None else environ

    listen = listen_address or _env(env, "TE_LISTEN_ADDRESS") or DEFAULT_LISTEN_ADDRESS
    path = metric_path or _env(env, "TE_METRIC_PATH") or DEFAULT_METRIC_PATH
    if not path.startswith("/"):
        raise ConfigurationError("Metric path must start with '/'.")
    parse_listen_address(listen)

    api_url = _env(env, "TE_API_URL")
    if not api_url:
        raise ConfigurationError("API URL must be defined. Set the 'TE_API_URL' environment variable.")
    parsed_url = urlparse(api_url)
    if parsed_url.scheme not in ("http", "https") or not parsed_url.netloc:
        raise ConfigurationError(f"Can't parse API URL {api_url!r}: expected an absolute http(s) URL.")
    if not api_url.endswith("/"):
        api_url += "/"

    api_login = _env(env, "TE_API_LOGIN")
    if not api_login:
        raise AuthenticationError("API login must be defined. Set the 'TE_API_LOGIN' environment variable.")
    api_password = env.get("TE_API_PASSWORD", "")
    if not api_password:
        raise AuthenticationError("API password must be defined. Set the 'TE_API_PASSWORD' environment variable.")

    reason_mode = (_env(env, "TE_REASON_MODE") or REASON_MODE_PREFIX).lower()
    if reason_mode not in REASON_MODES:
        raise ConfigurationError(
            f"Invalid value for 'TE_REASON_MODE': {reason_mode!r} (expected one of {', '.join(REASON_MODES)})."
        )

    return Config(
        api_url=api_url,
        api_login=api_login,
        api_password=api_password,
        listen_address=listen,
        metric_path=path,
        timeout_seconds=_parse_timeout(_env(env, "TE_TIMEOUT")),
        reason_mode=reason_mode,
        default_reason=_env(env, "TE_DEFAULT_REASON") or DEFAULT_REASON,
        default_pool=_env(env, "TE_DEFAULT_POOL") or DEFAULT_POOL,
        os_flags=_parse_bool("TE_OS_FLAGS", _env(env, "TE_OS_FLAGS"), True),
        collect_agents=_parse_bool("TE_COLLECT_AGENTS", _env(env, "TE_COLLECT_AGENTS"), True),
        debug=debug if debug else _parse_bool("TE_DEBUG", _env(env, "TE_DEBUG"), False),
    )
