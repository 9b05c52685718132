"""Ordered step log kept for every swap."""

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[str], None]


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bytes):
        return "0x" + value.hex()
    return repr(value)


class ActionLog:
    """Ordered list of swap steps, mirrored to logging.

    Steps marked ``notify`` are also handed to the notify callback, which
    must not block. Callback failures are logged and ignored.
    """

    def __init__(self, prefix: str = "[SwapOrchestrator] ", notify: Optional[NotifyCallback] = None):
        self.prefix = prefix
        self._notify = notify
        self._entries: list[str] = []

    def add(self, message: str, notify: bool = False) -> None:
        entry = f"{self.prefix}{message}"
        self._entries.append(entry)
        logger.info(entry)

        if notify and self._notify is not None:
            try:
                self._notify(message)
            except Exception as e:
                logger.warning(f"Progress notification failed: {e}")

    def add_data(self, message: str, data: Any) -> None:
        self.add(message)
        serialized = json.dumps(data, default=_json_default, sort_keys=True)
        self._entries.append(f"{self.prefix}Data: {serialized}")

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return any(text in entry for entry in self._entries)
