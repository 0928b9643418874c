"""Observability module: logging configuration and Prometheus metrics."""
