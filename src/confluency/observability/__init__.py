"""Observability - Prometheus counters for the coordination core."""
