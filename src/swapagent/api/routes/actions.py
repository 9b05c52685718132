"""Conversational action endpoint."""

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from swapagent.api.routes.swaps import get_services

router = APIRouter(prefix="/actions")


class ActionCall(BaseModel):
    """One action invocation with positional parameters."""
    user_id: int
    params: list[Any] = []


@router.post("/{action_name}")
async def run_action(action_name: str, body: ActionCall, request: Request) -> dict:
    """Run an action for the user's custodial wallet and return the reply text."""
    services = get_services(request)
    wallet = await services.vault.get_or_create_wallet(
        body.user_id,
        network=services.settings.chain_name,
        currency=services.settings.native_symbol,
    )
    message = await services.dispatcher.handle(body.user_id, wallet.address, action_name, body.params)
    return {"action": action_name, "wallet": wallet.address, "message": message}
