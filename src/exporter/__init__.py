"""Prometheus exporter for GitHub issue and pull request activity."""

__version__ = "0.1.0"
