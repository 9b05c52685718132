"""Swap quote, execution and lookup endpoints."""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from swapagent.chain.errors import ChainError, TransactionNotFoundError
from swapagent.services.factory import Services
from swapagent.services.swap_service import TokenNotFoundError
from swapagent.swap.models import SwapRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/swaps")


# Request/Response models
class SwapQuoteRequest(BaseModel):
    """Request for a swap quote."""
    user_id: int
    wallet_address: str
    token_in: str
    token_out: str
    amount: Decimal = Field(gt=0)
    chain: Optional[str] = None  # Defaults to CHAIN_NAME


class SwapExecuteRequest(SwapQuoteRequest):
    """Request to execute a previously quoted swap."""
    approved_rate: Optional[Decimal] = Field(default=None, gt=0)
    max_slippage_percent: Optional[Decimal] = Field(default=None, gt=0)
    telegram_chat_id: Optional[int] = None  # Progress updates go here when set


class SwapDetailsResponse(BaseModel):
    """Amounts re-derived from a submitted swap."""
    tx_hash: str
    token_in: str
    token_out: str
    amount_sent: str
    amount_received: str
    gas_fee_native: str
    rate: Optional[str] = None


def get_services(request: Request) -> Services:
    services = request.app.state.services
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def require_own_wallet(services: Services, user_id: int, wallet_address: str) -> None:
    """Reject requests for a wallet the user does not own (403)."""
    wallet = await services.vault.get_wallet(user_id)
    if wallet is None:
        logger.warning(f"User {user_id} has no wallet, refusing swap for {wallet_address}")
        raise HTTPException(status_code=403, detail="No wallet found for this user")
    if wallet.address.lower() != wallet_address.lower():
        logger.warning(f"User {user_id} requested swap for foreign wallet {wallet_address}")
        raise HTTPException(
            status_code=403,
            detail=(
                "You can only swap from your own wallet. "
                f"Please use the wallet address: {wallet.address}"
            ),
        )


def _swap_request(
    services: Services,
    body: SwapQuoteRequest,
    quote_only: bool,
    approved_rate: Optional[Decimal] = None,
    max_slippage_percent: Optional[Decimal] = None,
) -> SwapRequest:
    settings = services.settings
    return SwapRequest(
        wallet_address=body.wallet_address,
        chain=body.chain or settings.chain_name,
        token_in=body.token_in,
        token_out=body.token_out,
        amount=body.amount,
        quote_only=quote_only,
        approved_rate=approved_rate,
        max_slippage_percent=max_slippage_percent or settings.default_max_slippage_percent,
    )


@router.post("/quote")
async def quote_swap(body: SwapQuoteRequest, request: Request) -> dict:
    """Quote a swap without sending any transaction."""
    services = get_services(request)
    await require_own_wallet(services, body.user_id, body.wallet_address)
    result = await services.swap_service.swap(body.user_id, _swap_request(services, body, True))
    return result.to_dict()


@router.post("/execute")
async def execute_swap(body: SwapExecuteRequest, request: Request) -> dict:
    """Execute a swap, optionally streaming progress to Telegram."""
    services = get_services(request)
    await require_own_wallet(services, body.user_id, body.wallet_address)
    swap_request = _swap_request(
        services,
        body,
        quote_only=False,
        approved_rate=body.approved_rate,
        max_slippage_percent=body.max_slippage_percent,
    )

    sink = None
    if body.telegram_chat_id is not None:
        sink = services.notifier.progress_sink(
            body.telegram_chat_id, max_size=services.settings.notification_queue_size
        )

    try:
        result = await services.swap_service.swap(body.user_id, swap_request, sink)
    finally:
        if sink is not None:
            await sink.aclose()

    if body.telegram_chat_id is not None:
        await services.notifier.notify_swap_result(
            body.telegram_chat_id, result, services.settings.explorer_tx_url
        )

    if not result.is_success:
        logger.info(f"Swap for user {body.user_id} failed: {result.kind.value}")
    return result.to_dict()


@router.get("/{tx_hash}", response_model=SwapDetailsResponse)
async def swap_details(
    tx_hash: str,
    request: Request,
    token_in: str = Query(...),
    token_out: str = Query(...),
    chain: Optional[str] = Query(None),
) -> SwapDetailsResponse:
    """Re-derive sent and received amounts of a submitted swap."""
    services = get_services(request)
    try:
        token_from, token_to, amounts = await services.swap_service.swap_details(
            tx_hash, chain or services.settings.chain_name, token_in, token_out
        )
    except TokenNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransactionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Transaction not found: {tx_hash}")
    except ChainError as e:
        logger.error(f"Chain error reading {tx_hash}: {e}")
        raise HTTPException(status_code=502, detail="Chain node unavailable")

    return SwapDetailsResponse(
        tx_hash=tx_hash,
        token_in=token_from.symbol,
        token_out=token_to.symbol,
        amount_sent=str(amounts.sent),
        amount_received=str(amounts.received),
        gas_fee_native=str(amounts.gas_fee_native),
        rate=str(amounts.rate) if amounts.rate is not None else None,
    )
