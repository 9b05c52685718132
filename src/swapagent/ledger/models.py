"""SQLAlchemy models for wallets and the financial action audit trail."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ActionResult(str, Enum):
    """Lifecycle of a financial action record."""

    PROCESSING = "PROCESSING"  # Created before work starts
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"          # Business failure returned by the orchestrator
    ERROR = "ERROR"            # Unexpected exception

    @property
    def is_terminal(self) -> bool:
        return self is not ActionResult.PROCESSING


class ActionType(str, Enum):
    """Financial action kinds written by this service."""

    CRYPTO_SWAP_QUOTE_SWING = "CRYPTO_SWAP_QUOTE_SWING"
    CRYPTO_SWAP_SWING = "CRYPTO_SWAP_SWING"
    NATIVE_TRANSFER = "NATIVE_TRANSFER"
    CRYPTO_TRANSFER = "CRYPTO_TRANSFER"


class UserWallet(Base):
    """Custodial wallet generated for a user. Exactly one per user."""

    __tablename__ = "user_wallets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False, index=True)
    network: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    encrypted_private_key: Mapped[str] = mapped_column(Text, nullable=False)
    encrypted_mnemonic: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserWallet(user_id={self.user_id}, address={self.address})>"


class FinancialAction(Base):
    """Durable audit record of one quote or swap request."""

    __tablename__ = "financial_actions"
    __table_args__ = (Index("ix_financial_actions_account_created", "account_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)

    input_currency: Mapped[str] = mapped_column(String(20), nullable=False)
    input_network: Mapped[str] = mapped_column(String(50), nullable=False)
    input_wallet: Mapped[str] = mapped_column(String(42), nullable=False)
    input_amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    output_currency: Mapped[str] = mapped_column(String(20), nullable=False)
    output_network: Mapped[str] = mapped_column(String(50), nullable=False)
    output_wallet: Mapped[str] = mapped_column(String(42), nullable=False)

    result: Mapped[ActionResult] = mapped_column(
        String(20), default=ActionResult.PROCESSING, nullable=False
    )
    result_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    user_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True, index=True)

    input_balance_before: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)
    output_balance_before: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)
    input_balance_after: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)
    output_balance_after: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)

    commission_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)
    commission_wallet: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<FinancialAction(id={self.id}, type={self.action_type}, result={self.result})>"
