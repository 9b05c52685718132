"""Swap execution and transaction orchestration engine."""

__version__ = "0.1.0"
