"""Proof monitor: task tracking plus on-chain proof submission and reconciliation."""

__version__ = "0.1.0"
