"""Tests for the JSON-RPC chain client."""

import json

import httpx
import pytest

from conftest import ROUTER, WALLET
from swapagent.chain.client import ChainClient
from swapagent.chain.errors import (
    ChainError,
    ConfirmationTimeoutError,
    RpcError,
    TransactionNotFoundError,
)
from swapagent.chain.types import to_int

RPC_URL = "https://rpc.test"

RECEIPT = {
    "transactionHash": "0xabc",
    "status": "0x1",
    "blockNumber": "0x64",
    "from": WALLET,
    "to": ROUTER,
    "gasUsed": "0x5208",
    "effectiveGasPrice": "0x3b9aca00",
    "logs": [],
}


class FakeNode:
    """Answers JSON-RPC calls from a method -> result table."""

    def __init__(self, results=None, errors=None):
        self.results = results or {}
        self.errors = errors or {}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method = payload["method"]
        self.calls.append((method, payload["params"]))
        if method in self.errors:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": self.errors[method]})
        result = self.results.get(method)
        if callable(result):
            result = result(payload["params"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})

    def methods(self):
        return [method for method, _ in self.calls]


def client_for(node) -> ChainClient:
    return ChainClient(RPC_URL, timeout=5, transport=httpx.MockTransport(node))


class TestQuantities:
    """Tests for quantity parsing."""

    def test_to_int(self):
        """Test hex, decimal and empty quantities."""
        assert to_int("0x10") == 16
        assert to_int("0x") == 0
        assert to_int("42") == 42
        assert to_int(None) == 0
        assert to_int("", default=7) == 7
        assert to_int(5) == 5


class TestReads:
    """Tests for read calls."""

    @pytest.mark.asyncio
    async def test_get_balance(self):
        """Test balance is parsed and block tags are passed through."""
        node = FakeNode({"eth_getBalance": "0xde0b6b3a7640000"})

        balance = await client_for(node).get_balance(WALLET, 99)

        assert balance == 10**18
        assert node.calls == [("eth_getBalance", [WALLET, "0x63"])]

    @pytest.mark.asyncio
    async def test_transaction_count_pending(self):
        """Test the pending tag is forwarded."""
        node = FakeNode({"eth_getTransactionCount": "0x7"})

        assert await client_for(node).get_transaction_count(WALLET, "pending") == 7
        assert node.calls[0][1] == [WALLET, "pending"]

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        """Test node error objects become RpcError with code and message."""
        node = FakeNode(errors={"eth_getBalance": {"code": -32000, "message": "insufficient funds for transfer"}})

        with pytest.raises(RpcError) as exc_info:
            await client_for(node).get_balance(WALLET)

        assert exc_info.value.code == -32000
        assert exc_info.value.is_insufficient_funds
        assert "(code -32000)" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test non-200 responses become ChainError."""
        client = ChainClient(RPC_URL, transport=httpx.MockTransport(lambda request: httpx.Response(502)))

        with pytest.raises(ChainError):
            await client.get_block_number()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test connection failures become ChainError."""

        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = ChainClient(RPC_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(ChainError):
            await client.get_gas_price()

    @pytest.mark.asyncio
    async def test_transaction_not_found(self):
        """Test an unknown hash raises TransactionNotFoundError."""
        node = FakeNode({"eth_getTransactionByHash": None})

        with pytest.raises(TransactionNotFoundError):
            await client_for(node).get_transaction("0xmissing")

    @pytest.mark.asyncio
    async def test_receipt_parsed(self):
        """Test receipt fields are parsed into TxReceipt."""
        node = FakeNode({"eth_getTransactionReceipt": RECEIPT})

        receipt = await client_for(node).get_transaction_receipt("0xabc")

        assert receipt.succeeded
        assert receipt.block_number == 100
        assert receipt.gas_fee == 21000 * 10**9
        assert receipt.from_address == WALLET

    @pytest.mark.asyncio
    async def test_token_balance(self):
        """Test balanceOf call data and result parsing."""
        node = FakeNode({"eth_call": "0x" + hex(5 * 10**6)[2:].rjust(64, "0")})

        balance = await client_for(node).get_token_balance(ROUTER, WALLET)

        assert balance == 5 * 10**6
        call = node.calls[0][1][0]
        assert call["to"] == ROUTER
        assert call["data"] == "0x70a08231" + WALLET[2:].rjust(64, "0")

    @pytest.mark.asyncio
    async def test_chain_id_cached(self):
        """Test the chain id is fetched once."""
        node = FakeNode({"eth_chainId": "0x2105"})
        client = client_for(node)

        assert await client.get_chain_id() == 8453
        assert await client.get_chain_id() == 8453
        assert node.methods() == ["eth_chainId"]


class TestWaitForReceipt:
    """Tests for bounded confirmation waits."""

    @pytest.mark.asyncio
    async def test_returns_when_mined(self):
        """Test polling continues until the receipt appears."""
        responses = [None, None, RECEIPT]
        node = FakeNode({"eth_getTransactionReceipt": lambda params: responses.pop(0)})

        receipt = await client_for(node).wait_for_receipt("0xabc", timeout=5, poll_interval=0.01)

        assert receipt.transaction_hash == "0xabc"
        assert node.methods().count("eth_getTransactionReceipt") == 3

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test a never-mined transaction raises ConfirmationTimeoutError."""
        node = FakeNode({"eth_getTransactionReceipt": None})

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await client_for(node).wait_for_receipt("0xstuck", timeout=0.05, poll_interval=0.01)

        assert exc_info.value.tx_hash == "0xstuck"


class TestSendTransaction:
    """Tests for filling, signing and broadcasting."""

    @pytest.mark.asyncio
    async def test_fills_missing_fields(self, signer):
        """Test chain id, nonce, gas price and gas are filled from the node."""
        node = FakeNode(
            {
                "eth_chainId": "0x2105",
                "eth_getTransactionCount": "0x3",
                "eth_gasPrice": "0x3b9aca00",
                "eth_estimateGas": "0x5208",
                "eth_sendRawTransaction": "0xsent",
            }
        )

        tx_hash = await client_for(node).send_transaction(signer, {"to": ROUTER, "value": 1})

        assert tx_hash == "0xsent"
        prepared = signer.sign_transaction.call_args.args[0]
        assert prepared["chainId"] == 8453
        assert prepared["nonce"] == 3
        assert prepared["gasPrice"] == 10**9
        assert prepared["gas"] == 21000
        assert node.calls[-1] == ("eth_sendRawTransaction", ["0x02f8"])
        count_call = next(params for method, params in node.calls if method == "eth_getTransactionCount")
        assert count_call == [WALLET, "pending"]

    @pytest.mark.asyncio
    async def test_keeps_provided_fields(self, signer):
        """Test provided nonce, gas and EIP-1559 fees are not overridden."""
        node = FakeNode({"eth_chainId": "0x2105", "eth_sendRawTransaction": "0xsent"})

        await client_for(node).send_transaction(
            signer,
            {
                "from": WALLET,
                "to": ROUTER,
                "data": "abcd",
                "value": "0x0",
                "gasLimit": "500000",
                "gasPrice": "0x1",
                "maxFeePerGas": hex(3 * 10**9),
                "nonce": 9,
            },
        )

        prepared = signer.sign_transaction.call_args.args[0]
        assert prepared["nonce"] == 9
        assert prepared["gas"] == 500_000
        assert prepared["maxFeePerGas"] == 3 * 10**9
        assert prepared["maxPriorityFeePerGas"] == 10**9
        assert prepared["data"] == "0xabcd"
        assert prepared["to"] == "0x2222222222222222222222222222222222222222"
        assert "gasPrice" not in prepared
        assert "from" not in prepared
        assert node.methods() == ["eth_chainId", "eth_sendRawTransaction"]

    @pytest.mark.asyncio
    async def test_broadcast_error(self, signer):
        """Test a rejected broadcast raises RpcError."""
        node = FakeNode(
            {"eth_chainId": "0x2105"},
            errors={"eth_sendRawTransaction": {"code": -32000, "message": "nonce too low"}},
        )

        with pytest.raises(RpcError):
            await client_for(node).send_transaction(
                signer, {"to": ROUTER, "nonce": 1, "gas": 21000, "gasPrice": 1}
            )
