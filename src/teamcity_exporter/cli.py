"""Command-line argument parsing for the TeamCity queue exporter."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from . import __version__


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the exporter.

    Connection settings come from ``TE_*`` environment variables; the flags
    here only override where and how the exporter serves.
    """
    parser = argparse.ArgumentParser(
        prog="teamcity-queue-exporter",
        description="Expose TeamCity build queue and agent fleet state as Prometheus metrics.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Print version information and exit.",
    )
    parser.add_argument(
        "--listen-address",
        default=None,
        help="Address to serve metrics on, as host:port (default: TE_LISTEN_ADDRESS or :9190).",
    )
    parser.add_argument(
        "--metric-path",
        default=None,
        help="Path under which metrics are exposed (default: TE_METRIC_PATH or /metrics).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (same as TE_DEBUG=true).",
    )

    return parser.parse_args(argv)
