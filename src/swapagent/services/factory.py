"""Composition root wiring components from settings."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from swapagent.aggregator.client import SwingClient
from swapagent.chain.client import ChainClient
from swapagent.config import Settings
from swapagent.crypto import SecretCodec
from swapagent.ledger.audit import FinancialActionRecorder
from swapagent.ledger.database import get_session_factory
from swapagent.notifications.telegram import TelegramNotifier
from swapagent.services.swap_service import SwapService
from swapagent.services.transfer_service import TransferService
from swapagent.signing.vault import KeyVault
from swapagent.swap.commission import CommissionCollector
from swapagent.swap.nonce import NonceGuard
from swapagent.swap.orchestrator import SwapOrchestrator
from swapagent.swap.receipt import ReceiptAnalyzer

if TYPE_CHECKING:
    from swapagent.actions.dispatcher import ActionDispatcher

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived components shared by the API and action handlers."""

    settings: Settings
    chain: ChainClient
    aggregator: SwingClient
    vault: KeyVault
    orchestrator: SwapOrchestrator
    swap_service: SwapService
    transfer_service: TransferService
    dispatcher: "ActionDispatcher"
    notifier: TelegramNotifier


def build_services(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Services:
    """Create every component from one settings instance."""
    from swapagent.actions.dispatcher import ActionDispatcher

    session_factory = session_factory or get_session_factory(settings)

    chain = ChainClient(settings.rpc_url, timeout=settings.http_timeout)
    aggregator = SwingClient(
        api_key=settings.swing_api_key,
        project_id=settings.swing_project_id,
        api_url=settings.swing_api_url,
        platform_url=settings.swing_platform_url,
        timeout=settings.http_timeout,
        max_slippage=settings.quote_max_slippage,
        gasless=settings.quote_gasless,
    )
    vault = KeyVault(SecretCodec(settings.key_salt), session_factory)
    receipt_analyzer = ReceiptAnalyzer(chain)
    orchestrator = SwapOrchestrator.from_settings(
        settings,
        chain=chain,
        aggregator=aggregator,
        vault=vault,
        receipt_analyzer=receipt_analyzer,
        commission=CommissionCollector.from_settings(chain, settings),
        nonce_guard=NonceGuard(
            chain,
            vault,
            max_fee_gwei=settings.cancel_max_fee_gwei,
            priority_fee_gwei=settings.cancel_priority_fee_gwei,
        ),
    )
    recorder = FinancialActionRecorder(session_factory)
    swap_service = SwapService(
        orchestrator=orchestrator,
        recorder=recorder,
        aggregator=aggregator,
        chain=chain,
        receipt_analyzer=receipt_analyzer,
        native_symbol=settings.native_symbol,
    )
    transfer_service = TransferService.from_settings(
        settings,
        chain=chain,
        vault=vault,
        recorder=recorder,
        aggregator=aggregator,
    )

    if not settings.commission_wallet:
        logger.warning("COMMISSION_WALLET not set - commission collection disabled")

    return Services(
        settings=settings,
        chain=chain,
        aggregator=aggregator,
        vault=vault,
        orchestrator=orchestrator,
        swap_service=swap_service,
        transfer_service=transfer_service,
        dispatcher=ActionDispatcher.from_settings(swap_service, settings, transfer_service),
        notifier=TelegramNotifier(settings.telegram_bot_token),
    )
