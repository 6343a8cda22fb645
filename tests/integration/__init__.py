"""Integration tests for flow-metrics."""
