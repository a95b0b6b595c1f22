"""Prometheus metrics for the lifecycle engine."""
