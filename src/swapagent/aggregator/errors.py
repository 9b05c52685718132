"""Errors raised by the aggregator client."""

from typing import Any, Optional


class AggregatorError(Exception):
    """Error response or transport failure from the swap aggregator.

    Attributes:
        message: Human-readable message from the aggregator, if any
        status_code: HTTP status, None for transport failures
        error_code: Machine-readable code (e.g. INSUFFICIENT_FUNDS, HIGH_SLIPPAGE)
        payload: Raw error body
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.payload = payload

    @classmethod
    def from_response(cls, status_code: int, body: Any, endpoint: str) -> "AggregatorError":
        """Build an error from a non-2xx response body."""
        error_code = None
        message = None
        if isinstance(body, dict):
            raw_code = body.get("error") or body.get("code")
            if isinstance(raw_code, str):
                error_code = raw_code.upper()
            elif isinstance(raw_code, dict):
                error_code = raw_code.get("code")
                message = raw_code.get("message")
            message = body.get("message") or message
        elif isinstance(body, str) and body:
            message = body
        if not message:
            message = f"Aggregator {endpoint} request failed with HTTP {status_code}"
        return cls(message, status_code=status_code, error_code=error_code, payload=body)

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None

    def __str__(self) -> str:
        if self.error_code:
            return f"{self.error_code}: {self.message}"
        return self.message
