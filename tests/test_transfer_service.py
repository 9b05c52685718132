"""Tests for native and ERC20 transfers."""

import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import USDC, WALLET, make_receipt
from swapagent.aggregator.client import SwingClient
from swapagent.chain.client import ChainClient
from swapagent.chain.errors import ConfirmationTimeoutError, RpcError
from swapagent.ledger.audit import FinancialActionRecorder
from swapagent.ledger.models import ActionResult, ActionType
from swapagent.ledger.repository import LedgerRepository
from swapagent.services.transfer_service import (
    TransferRequest,
    TransferService,
    encode_erc20_transfer,
)
from swapagent.signing.vault import KeyVault
from swapagent.swap.models import FailureKind
from swapagent.utils.locks import WalletLock

RECIPIENT = "0x9999999999999999999999999999999999999999"


@pytest.fixture
def chain():
    mock = MagicMock(spec=ChainClient)
    mock.get_balance.return_value = 2 * 10**18
    mock.get_token_balance.return_value = 250 * 10**6
    mock.send_transaction.return_value = "0xsend"
    mock.wait_for_receipt.return_value = make_receipt(tx_hash="0xsend")
    return mock


@pytest.fixture
def vault(signer):
    mock = MagicMock(spec=KeyVault)
    mock.resolve_signer.return_value = signer
    return mock


@pytest.fixture
def aggregator():
    mock = MagicMock(spec=SwingClient)
    mock.find_tokens.return_value = [USDC]
    return mock


@pytest.fixture
def service(chain, vault, session_factory, aggregator):
    return TransferService(
        chain=chain,
        vault=vault,
        recorder=FinancialActionRecorder(session_factory),
        aggregator=aggregator,
        wallet_lock_timeout=0.05,
        explorer_tx_url="https://basescan.org/tx/",
    )


def transfer(currency: str = "eth", amount: str = "0.01", recipient: str = RECIPIENT) -> TransferRequest:
    return TransferRequest(
        wallet_address=WALLET,
        chain="base",
        recipient=recipient,
        currency=currency,
        amount=Decimal(amount),
    )


async def recorded_actions(session_factory, account_id: int = 1):
    async with session_factory() as session:
        return await LedgerRepository(session).get_financial_actions(account_id)


class TestEncoding:
    """Tests for ERC20 transfer call data."""

    def test_transfer_call_data(self):
        """Test selector, padded recipient and padded amount."""
        data = encode_erc20_transfer("0xABCDEF0000000000000000000000000000000001", 5_000_000)

        assert data == (
            "0xa9059cbb"
            "000000000000000000000000abcdef0000000000000000000000000000000001"
            "00000000000000000000000000000000000000000000000000000000004c4b40"
        )

    def test_negative_amount_rejected(self):
        """Test negative amounts cannot be encoded."""
        with pytest.raises(ValueError):
            encode_erc20_transfer(RECIPIENT, -1)


class TestNativeTransfer:
    """Tests for sending the chain's native asset."""

    @pytest.mark.asyncio
    async def test_send_native(self, service, chain, vault, signer, session_factory):
        """Test ETH is sent as value and recorded as a native transfer."""
        result = await service.send(1, transfer())

        assert result.is_success
        assert result.tx_hash == "0xsend"
        assert result.gas_fee_native == Decimal("0.00015")
        vault.resolve_signer.assert_awaited_once_with(WALLET)
        chain.send_transaction.assert_awaited_once_with(signer, {"to": RECIPIENT, "value": 10**16})

        (action,) = await recorded_actions(session_factory)
        assert action.action_type == ActionType.NATIVE_TRANSFER.value
        assert action.result == ActionResult.SUCCESS
        assert action.input_wallet == WALLET
        assert action.output_wallet == RECIPIENT
        assert action.input_amount == Decimal("0.01")
        assert action.input_balance_before == Decimal("2")
        assert action.tx_hash == "0xsend"
        assert action.user_message == f"Successfully sent 0.01 ETH to {RECIPIENT}. Transaction hash: 0xsend"

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, service, chain, session_factory):
        """Test a transfer above the balance is refused before signing."""
        chain.get_balance.return_value = 10**15

        result = await service.send(1, transfer())

        assert not result.is_success
        assert result.kind == FailureKind.INSUFFICIENT_FUNDS
        assert result.error == "Insufficient balance for transfer. Current balance: 0.001 ETH"
        chain.send_transaction.assert_not_awaited()
        (action,) = await recorded_actions(session_factory)
        assert action.result == ActionResult.FAILED

    @pytest.mark.asyncio
    async def test_node_rejects_for_funds(self, service, chain, session_factory):
        """Test a node insufficient-funds error is classified and recorded."""
        chain.send_transaction.side_effect = RpcError(-32000, "insufficient funds for gas * price + value")

        result = await service.send(1, transfer())

        assert result.kind == FailureKind.INSUFFICIENT_FUNDS
        assert result.error.startswith("Insufficient funds.")
        (action,) = await recorded_actions(session_factory)
        assert action.result == ActionResult.ERROR
        assert "insufficient funds" in json.loads(action.result_data)["error"]

    @pytest.mark.asyncio
    async def test_reverted(self, service, chain, session_factory):
        """Test a reverted transfer keeps its hash."""
        chain.wait_for_receipt.return_value = make_receipt(status=0, tx_hash="0xsend")

        result = await service.send(1, transfer())

        assert result.kind == FailureKind.EXECUTION_REVERTED
        assert result.tx_hash == "0xsend"
        (action,) = await recorded_actions(session_factory)
        assert action.result == ActionResult.ERROR
        assert action.tx_hash == "0xsend"

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, service, chain):
        """Test a timeout points at the explorer instead of claiming failure."""
        chain.wait_for_receipt.side_effect = ConfirmationTimeoutError("0xsend", 30)

        result = await service.send(1, transfer())

        assert result.kind == FailureKind.CONFIRMATION_TIMEOUT
        assert result.tx_hash == "0xsend"
        assert "https://basescan.org/tx/0xsend" in result.error

    @pytest.mark.asyncio
    async def test_wallet_busy(self, service, chain):
        """Test a transfer waits for the wallet lock and gives up when it is held."""
        async with WalletLock(WALLET, operation="swap"):
            result = await service.send(1, transfer())

        assert result.kind == FailureKind.WALLET_BUSY
        chain.send_transaction.assert_not_awaited()


class TestTokenTransfer:
    """Tests for sending listed ERC20 tokens."""

    @pytest.mark.asyncio
    async def test_send_token(self, service, chain, aggregator, signer, session_factory):
        """Test tokens are sent through transfer() on the token contract."""
        result = await service.send(1, transfer(currency="usdc", amount="5"))

        assert result.is_success
        aggregator.find_tokens.assert_awaited_once_with("base", "USDC")
        tx = chain.send_transaction.call_args.args[1]
        assert tx["to"] == USDC.address
        assert tx["value"] == 0
        assert tx["data"] == encode_erc20_transfer(RECIPIENT, 5_000_000)

        (action,) = await recorded_actions(session_factory)
        assert action.action_type == ActionType.CRYPTO_TRANSFER.value
        assert action.input_balance_before == Decimal("250")

    @pytest.mark.asyncio
    async def test_unknown_token(self, service, aggregator, chain, session_factory):
        """Test an unlisted token fails without a record."""
        aggregator.find_tokens.return_value = [None]

        result = await service.send(1, transfer(currency="xyz"))

        assert result.kind == FailureKind.PRECONDITION
        assert result.error == "Token XYZ is not supported on base"
        chain.send_transaction.assert_not_awaited()
        assert await recorded_actions(session_factory) == []


class TestValidation:
    """Tests for requests rejected before any lookup."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_kwargs,error",
        [
            ({"recipient": "mom"}, 'Invalid Ethereum address format for "to" address: mom'),
            ({"amount": "0"}, "Transfer amount must be greater than zero"),
        ],
    )
    async def test_rejected(self, service, aggregator, request_kwargs, error):
        """Test bad recipients and amounts are refused."""
        result = await service.send(1, transfer(**request_kwargs))

        assert result.kind == FailureKind.PRECONDITION
        assert result.error == error
        aggregator.find_tokens.assert_not_awaited()
