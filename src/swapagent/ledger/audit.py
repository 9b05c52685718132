"""Fire-and-forget writer for the financial action audit trail.

Audit writes never influence the swap outcome: every failure is logged and
the caller carries on with the result it already has.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from swapagent.ledger.models import ActionResult
from swapagent.ledger.repository import LedgerRepository

logger = logging.getLogger(__name__)


class FinancialActionRecorder:
    """Creates and finishes FinancialAction records in their own sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def start(
        self,
        account_id: int,
        action_type: str,
        wallet_address: str,
        network: str,
        input_currency: str,
        output_currency: str,
        input_amount: Decimal,
        input_balance_before: Optional[Decimal] = None,
        output_balance_before: Optional[Decimal] = None,
        output_wallet: Optional[str] = None,
    ) -> Optional[int]:
        """Create a PROCESSING record.

        The output wallet defaults to the input wallet; transfers pass the
        recipient.

        Returns:
            Record ID, or None if the write failed
        """
        try:
            async with self._session_factory() as session:
                repo = LedgerRepository(session)
                action = await repo.create_financial_action(
                    account_id=account_id,
                    action_type=action_type,
                    input_currency=input_currency,
                    input_network=network,
                    input_wallet=wallet_address,
                    input_amount=input_amount,
                    output_currency=output_currency,
                    output_network=network,
                    output_wallet=output_wallet or wallet_address,
                    input_balance_before=input_balance_before,
                    output_balance_before=output_balance_before,
                )
                await session.commit()
                logger.info(f"Financial action {action.id} created: {action_type}")
                return action.id
        except Exception as e:
            logger.error(f"Failed to create financial action {action_type}: {e}")
            return None

    async def finish(
        self,
        action_id: Optional[int],
        result: ActionResult,
        result_data: Optional[str] = None,
        user_message: Optional[str] = None,
        tx_hash: Optional[str] = None,
        input_balance_after: Optional[Decimal] = None,
        output_balance_after: Optional[Decimal] = None,
        commission_amount: Optional[Decimal] = None,
        commission_wallet: Optional[str] = None,
    ) -> bool:
        """Move a record to its terminal state.

        Returns:
            True if the record was written
        """
        if action_id is None:
            logger.warning(f"No financial action to finish with {result.value}")
            return False

        try:
            async with self._session_factory() as session:
                repo = LedgerRepository(session)
                await repo.finish_financial_action(
                    action_id,
                    result,
                    result_data=result_data,
                    user_message=user_message,
                    tx_hash=tx_hash,
                    input_balance_after=input_balance_after,
                    output_balance_after=output_balance_after,
                    commission_amount=commission_amount,
                    commission_wallet=commission_wallet,
                )
                await session.commit()
                logger.info(f"Financial action {action_id} finished: {result.value}")
                return True
        except Exception as e:
            logger.error(f"Failed to finish financial action {action_id}: {e}")
            return False
