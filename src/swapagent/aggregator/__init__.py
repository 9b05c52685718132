"""Swap aggregator integration."""

from swapagent.aggregator.client import SwingClient
from swapagent.aggregator.errors import AggregatorError

__all__ = ["SwingClient", "AggregatorError"]
