"""Swap quoting, execution and post-trade analysis."""
