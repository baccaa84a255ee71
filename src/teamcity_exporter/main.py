"""Entry point serving TeamCity metrics over HTTP."""

from __future__ import annotations

import logging
import platform
import sys
from typing import Any, Callable, Iterable, List, Optional, Sequence
from wsgiref.simple_server import make_server

from prometheus_client import CollectorRegistry, Info, make_wsgi_app

from . import __version__
from .cli import parse_args
from .collector import TeamCityCollector
from .config import Config, load_config, parse_listen_address
from .errors import AuthenticationError, ConfigurationError
from .teamcity_client import TeamCityClient

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_AUTHENTICATION_ERROR = 3

EXPORTER_NAME = "teamcity_queue_exporter"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LANDING_PAGE = """<html>
<head><title>TeamCity Queue Exporter v{version}</title></head>
<body>
<h1>TeamCity Queue Exporter v{version}</h1>
<p><a href='{metric_path}'>Metrics</a></p>
</body>
</html>
"""

WsgiApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


def configure_logging(debug: bool) -> None:
    """Configure root logging; ``debug`` lowers the level to DEBUG."""
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)


def create_registry(config: Config) -> CollectorRegistry:
    """Create a registry holding the build info metric and the TeamCity collector."""
    registry = CollectorRegistry()
    Info(
        f"{EXPORTER_NAME}_build",
        f"A metric with a constant '1' value labeled by the {EXPORTER_NAME} version",
        registry=registry,
    ).info({"version": __version__, "pythonversion": platform.python_version()})
    registry.register(TeamCityCollector(client=TeamCityClient(config), config=config))
    return registry


def create_app(registry: CollectorRegistry, metric_path: str) -> WsgiApp:
    """Build the WSGI app serving metrics at ``metric_path`` and a landing page at ``/``."""
    metrics_app = make_wsgi_app(registry)
    landing = LANDING_PAGE.format(version=__version__, metric_path=metric_path).encode("utf-8")

    def app(environ: dict, start_response: Callable[..., Any]) -> List[bytes]:
        path = environ.get("PATH_INFO", "/")
        if path == metric_path:
            return metrics_app(environ, start_response)
        if path == "/":
            start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
            return [landing]
        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"Not Found"]

    return app


def serve(config: Config, registry: CollectorRegistry) -> None:
    """Serve the exporter until interrupted."""
    host, port = parse_listen_address(config.listen_address)
    httpd = make_server(host, port, create_app(registry, config.metric_path))
    logger.info(
        "Serving TeamCity metrics",
        extra={"listen_address": config.listen_address, "metric_path": config.metric_path},
    )
    with httpd:
        httpd.serve_forever()


def run_exporter(argv: Optional[Sequence[str]] = None) -> int:
    """Load configuration and serve metrics.

    Returns:
        Process exit code: 0 on clean shutdown, 2 for configuration errors,
        3 for missing credentials and 1 for anything unexpected.
    """
    try:
        args = parse_args(argv)
        configure_logging(args.debug)
        config = load_config(
            listen_address=args.listen_address,
            metric_path=args.metric_path,
            debug=args.debug,
        )
        if config.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        logger.info("Starting %s %s...", EXPORTER_NAME, __version__)
        serve(config, create_registry(config))
        return EXIT_SUCCESS
    except KeyboardInterrupt:
        logger.info("Shutting down")
        return EXIT_SUCCESS
    except AuthenticationError as exc:
        logger.error("Authentication error: %s", exc)
        return EXIT_AUTHENTICATION_ERROR
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIGURATION_ERROR
    except Exception:
        logger.exception("Unexpected error while running the exporter")
        return EXIT_GENERIC_ERROR


def main() -> None:
    sys.exit(run_exporter())


if __name__ == "__main__":
    main()
