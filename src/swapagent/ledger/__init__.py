"""Ledger module for custodial wallets and the financial action audit trail."""

from swapagent.ledger.audit import FinancialActionRecorder
from swapagent.ledger.database import close_db, init_db
from swapagent.ledger.models import (
    ActionResult,
    ActionType,
    FinancialAction,
    UserWallet,
)
from swapagent.ledger.repository import LedgerRepository, WalletExistsError

__all__ = [
    # Models
    "UserWallet",
    "FinancialAction",
    # Enums
    "ActionResult",
    "ActionType",
    # Database
    "close_db",
    "init_db",
    "LedgerRepository",
    "WalletExistsError",
    "FinancialActionRecorder",
]
