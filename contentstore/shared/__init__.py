"""Shared: enums, telemetry (logging, tracing), and utilities used across layers."""
