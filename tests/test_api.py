"""Tests for the FastAPI endpoints."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import ETH, USDC, WALLET, WETH, make_route
from swapagent.actions.dispatcher import ActionDispatcher
from swapagent.aggregator.client import SwingClient
from swapagent.api.app import create_app
from swapagent.chain.client import ChainClient
from swapagent.chain.errors import ChainError, TransactionNotFoundError
from swapagent.config import Settings
from swapagent.ledger.models import UserWallet
from swapagent.notifications.sink import NotificationSink
from swapagent.notifications.telegram import TelegramNotifier
from swapagent.services.factory import Services
from swapagent.services.swap_service import SwapService, TokenNotFoundError
from swapagent.services.transfer_service import TransferService
from swapagent.signing.vault import KeyVault
from swapagent.swap.models import FailureKind, SwapAmounts, SwapFailure, SwapSuccess
from swapagent.swap.orchestrator import SwapOrchestrator


def quote_result() -> SwapSuccess:
    return SwapSuccess(
        token_in=USDC,
        token_out=WETH,
        amount_sent=Decimal("100"),
        amount_received=Decimal("0.04"),
        quoted_rate=Decimal("0.0004"),
        total_fee_usd=Decimal("0.5"),
        quotes=[make_route(4 * 10**16)],
        action_log=["[SwapOrchestrator] Getting quote"],
    )


@pytest.fixture
def settings():
    return Settings(chain_name="base", debug=True, key_salt="test-salt")


@pytest.fixture
def services(settings):
    vault = MagicMock(spec=KeyVault)
    vault.get_wallet.return_value = UserWallet(user_id=1, address=WALLET)
    return Services(
        settings=settings,
        chain=MagicMock(spec=ChainClient),
        aggregator=MagicMock(spec=SwingClient),
        vault=vault,
        orchestrator=MagicMock(spec=SwapOrchestrator),
        swap_service=MagicMock(spec=SwapService),
        transfer_service=MagicMock(spec=TransferService),
        dispatcher=MagicMock(spec=ActionDispatcher),
        notifier=MagicMock(spec=TelegramNotifier),
    )


@pytest_asyncio.fixture
async def client(settings, services):
    """Create async test client."""
    app = create_app(settings, services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


QUOTE_BODY = {
    "user_id": 1,
    "wallet_address": WALLET,
    "token_in": "usdc",
    "token_out": "weth",
    "amount": "100",
}


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        """Test basic health check."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "swapagent"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client, services):
        """Test detailed health reports the chain head and redacts secrets."""
        services.chain.get_block_number.return_value = 1234

        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["chain"] == {"name": "base", "block_number": 1234}
        assert "environment" in data["config"]
        assert data["config"]["vault"]["salt"] == "***"

    @pytest.mark.asyncio
    async def test_detailed_health_degraded(self, client, services):
        """Test an unreachable node marks the service degraded."""
        services.chain.get_block_number.side_effect = ChainError("connection refused")

        response = await client.get("/health/detailed")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["chain"]["error"] == "connection refused"


class TestSwapEndpoints:
    """Tests for swap quote, execute and details endpoints."""

    @pytest.mark.asyncio
    async def test_quote(self, client, services):
        """Test a quote returns the result dict and uses the default chain."""
        services.swap_service.swap.return_value = quote_result()

        response = await client.post("/swaps/quote", json=QUOTE_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["isSuccess"] is True
        assert data["quotedRate"] == "0.0004"
        user_id, request = services.swap_service.swap.call_args.args
        assert user_id == 1
        assert request.quote_only
        assert request.chain == "base"
        assert request.token_in == "USDC"

    @pytest.mark.asyncio
    async def test_quote_rejects_zero_amount(self, client, services):
        """Test non-positive amounts fail validation."""
        response = await client.post("/swaps/quote", json={**QUOTE_BODY, "amount": "0"})

        assert response.status_code == 422
        services.swap_service.swap.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/swaps/quote", "/swaps/execute"])
    async def test_foreign_wallet_forbidden(self, client, services, path):
        """Test a user cannot quote or swap from another user's wallet."""
        services.vault.get_wallet.return_value = UserWallet(
            user_id=999, address="0x9999999999999999999999999999999999999999"
        )

        response = await client.post(path, json={**QUOTE_BODY, "user_id": 999, "approved_rate": "0.0004"})

        assert response.status_code == 403
        assert "0x9999999999999999999999999999999999999999" in response.json()["detail"]
        services.vault.get_wallet.assert_awaited_once_with(999)
        services.swap_service.swap.assert_not_called()

    @pytest.mark.asyncio
    async def test_user_without_wallet_forbidden(self, client, services):
        """Test a user with no wallet cannot swap and none is created."""
        services.vault.get_wallet.return_value = None

        response = await client.post(
            "/swaps/execute", json={**QUOTE_BODY, "user_id": 999, "approved_rate": "0.0004"}
        )

        assert response.status_code == 403
        services.vault.get_or_create_wallet.assert_not_called()
        services.swap_service.swap.assert_not_called()

    @pytest.mark.asyncio
    async def test_own_wallet_any_case(self, client, services):
        """Test the ownership check ignores address case."""
        services.vault.get_wallet.return_value = UserWallet(
            user_id=1, address="0xabcdef0000000000000000000000000000000001"
        )
        services.swap_service.swap.return_value = quote_result()

        response = await client.post(
            "/swaps/quote",
            json={**QUOTE_BODY, "wallet_address": "0xABCDEF0000000000000000000000000000000001"},
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_execute_failure(self, client, services):
        """Test a failed swap is reported in the body."""
        services.swap_service.swap.return_value = SwapFailure(
            reason="The rate has changed. Please get a new quote.",
            kind=FailureKind.RATE_MOVED,
            action_log=[],
        )

        response = await client.post(
            "/swaps/execute", json={**QUOTE_BODY, "approved_rate": "0.0004"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["isSuccess"] is False
        assert data["kind"] == "rate_moved"
        _, request, notify = services.swap_service.swap.call_args.args
        assert not request.quote_only
        assert request.approved_rate == Decimal("0.0004")
        assert request.max_slippage_percent == Decimal("1")
        assert notify is None

    @pytest.mark.asyncio
    async def test_execute_streams_to_telegram(self, client, services):
        """Test progress goes to a sink that is closed after the swap."""
        sink = MagicMock(spec=NotificationSink)
        services.notifier.progress_sink.return_value = sink
        result = quote_result()
        result.tx_hash = "0xswap"
        services.swap_service.swap.return_value = result

        response = await client.post(
            "/swaps/execute",
            json={**QUOTE_BODY, "approved_rate": "0.0004", "telegram_chat_id": 42},
        )

        assert response.json()["txHash"] == "0xswap"
        services.notifier.progress_sink.assert_called_once_with(42, max_size=100)
        assert services.swap_service.swap.call_args.args[2] is sink
        sink.aclose.assert_awaited_once()
        services.notifier.notify_swap_result.assert_awaited_once_with(42, result, "https://basescan.org/tx/")

    @pytest.mark.asyncio
    async def test_swap_details(self, client, services):
        """Test amounts are re-derived for a transaction hash."""
        services.swap_service.swap_details.return_value = (
            USDC,
            ETH,
            SwapAmounts.build(Decimal("100"), Decimal("0.04"), Decimal("0.0001")),
        )

        response = await client.get("/swaps/0xswap", params={"token_in": "USDC", "token_out": "ETH"})

        assert response.status_code == 200
        data = response.json()
        assert data["token_out"] == "ETH"
        assert data["amount_received"] == "0.04"
        assert Decimal(data["rate"]) == Decimal("0.0004")
        services.swap_service.swap_details.assert_awaited_once_with("0xswap", "base", "USDC", "ETH")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,status",
        [
            (TransactionNotFoundError("0xmissing"), 404),
            (TokenNotFoundError("Token XYZ is not supported on base"), 404),
            (ChainError("connection refused"), 502),
        ],
    )
    async def test_swap_details_errors(self, client, services, error, status):
        """Test lookup errors map to HTTP statuses."""
        services.swap_service.swap_details.side_effect = error

        response = await client.get("/swaps/0xmissing", params={"token_in": "USDC", "token_out": "XYZ"})

        assert response.status_code == status

    @pytest.mark.asyncio
    async def test_services_not_ready(self, settings):
        """Test requests before startup return 503."""
        app = create_app(settings)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post("/swaps/quote", json=QUOTE_BODY)

        assert response.status_code == 503


class TestActionEndpoint:
    """Tests for the conversational action endpoint."""

    @pytest.mark.asyncio
    async def test_run_action(self, client, services):
        """Test the action runs against the user's custodial wallet."""
        services.vault.get_or_create_wallet.return_value = UserWallet(user_id=1, address=WALLET)
        services.dispatcher.handle.return_value = "Balance of ETH is 1 ETH for wallet " + WALLET

        response = await client.post(
            "/actions/getWalletBalance", json={"user_id": 1, "params": [WALLET, "ETH"]}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["wallet"] == WALLET
        assert data["message"].startswith("Balance of ETH")
        services.vault.get_or_create_wallet.assert_awaited_once_with(1, network="base", currency="ETH")
        services.dispatcher.handle.assert_awaited_once_with(1, WALLET, "getWalletBalance", [WALLET, "ETH"])
