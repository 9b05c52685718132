"""Application services built on the swap engine."""

from swapagent.services.factory import Services, build_services
from swapagent.services.swap_service import SwapService, TokenNotFoundError
from swapagent.services.transfer_service import TransferRequest, TransferResult, TransferService

__all__ = [
    "Services",
    "build_services",
    "SwapService",
    "TokenNotFoundError",
    "TransferRequest",
    "TransferResult",
    "TransferService",
]
