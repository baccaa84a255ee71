"""Prometheus exporter for TeamCity build queue and agent fleet state."""

__version__ = "0.1.0"
