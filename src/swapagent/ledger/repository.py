"""Repository for wallet and financial action records."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swapagent.ledger.models import ActionResult, FinancialAction, UserWallet


class WalletExistsError(ValueError):
    """Raised when a user already owns a wallet."""

    pass


class LedgerRepository:
    """Repository for all ledger-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Wallet operations
    async def get_wallet_by_user(self, user_id: int) -> Optional[UserWallet]:
        """Get the wallet owned by a user."""
        stmt = select(UserWallet).where(UserWallet.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_wallet_by_address(self, address: str) -> Optional[UserWallet]:
        """Get a wallet by address (case-insensitive)."""
        stmt = select(UserWallet).where(UserWallet.address == address.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_wallet(
        self,
        user_id: int,
        address: str,
        network: str,
        currency: str,
        encrypted_private_key: str,
        encrypted_mnemonic: Optional[str] = None,
    ) -> UserWallet:
        """Create the wallet for a user. Raises WalletExistsError if one exists."""
        if await self.get_wallet_by_user(user_id) is not None:
            raise WalletExistsError(f"User with ID {user_id} already has a wallet")

        wallet = UserWallet(
            user_id=user_id,
            address=address.lower(),
            network=network,
            currency=currency.upper(),
            encrypted_private_key=encrypted_private_key,
            encrypted_mnemonic=encrypted_mnemonic,
        )
        self.session.add(wallet)
        await self.session.flush()
        return wallet

    # Financial action operations
    async def create_financial_action(
        self,
        account_id: int,
        action_type: str,
        input_currency: str,
        input_network: str,
        input_wallet: str,
        input_amount: Decimal,
        output_currency: str,
        output_network: str,
        output_wallet: str,
        input_balance_before: Optional[Decimal] = None,
        output_balance_before: Optional[Decimal] = None,
    ) -> FinancialAction:
        """Create a PROCESSING financial action record."""
        action = FinancialAction(
            account_id=account_id,
            action_type=action_type,
            input_currency=input_currency.upper(),
            input_network=input_network,
            input_wallet=input_wallet,
            input_amount=input_amount,
            output_currency=output_currency.upper(),
            output_network=output_network,
            output_wallet=output_wallet,
            input_balance_before=input_balance_before,
            output_balance_before=output_balance_before,
            result=ActionResult.PROCESSING,
        )
        self.session.add(action)
        await self.session.flush()
        return action

    async def get_financial_action(self, action_id: int) -> Optional[FinancialAction]:
        """Get a financial action by ID."""
        stmt = select(FinancialAction).where(FinancialAction.id == action_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_financial_actions(
        self,
        account_id: int,
        result: Optional[ActionResult] = None,
        limit: int = 50,
    ) -> list[FinancialAction]:
        """Get recent financial actions for an account."""
        stmt = select(FinancialAction).where(FinancialAction.account_id == account_id)
        if result is not None:
            stmt = stmt.where(FinancialAction.result == result)
        stmt = stmt.order_by(FinancialAction.id.desc()).limit(limit)
        rows = await self.session.execute(stmt)
        return list(rows.scalars().all())

    async def finish_financial_action(
        self,
        action_id: int,
        result: ActionResult,
        result_data: Optional[str] = None,
        user_message: Optional[str] = None,
        tx_hash: Optional[str] = None,
        input_balance_after: Optional[Decimal] = None,
        output_balance_after: Optional[Decimal] = None,
        commission_amount: Optional[Decimal] = None,
        commission_wallet: Optional[str] = None,
    ) -> FinancialAction:
        """Move a PROCESSING record to a terminal state.

        A record already in a terminal state is returned unchanged.
        """
        if not result.is_terminal:
            raise ValueError("Financial action must be finished with a terminal result")

        action = await self.get_financial_action(action_id)
        if action is None:
            raise ValueError(f"Financial action {action_id} not found")

        if ActionResult(action.result).is_terminal:
            return action

        action.result = result
        action.result_data = result_data
        action.user_message = user_message
        action.tx_hash = tx_hash
        action.input_balance_after = input_balance_after
        action.output_balance_after = output_balance_after
        action.commission_amount = commission_amount
        action.commission_wallet = commission_wallet

        await self.session.flush()
        return action
