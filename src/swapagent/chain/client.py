"""JSON-RPC client for EVM chains.

Every call opens its own httpx client, so one ChainClient can be shared by
concurrent swaps for different wallets without shared connection state.
"""

import asyncio
import logging
from typing import Any, Optional, Union

import httpx
from web3 import Web3

from swapagent.chain.errors import (
    ChainError,
    ConfirmationTimeoutError,
    RpcError,
    TransactionNotFoundError,
)
from swapagent.chain.types import ChainTransaction, TxReceipt, to_hex, to_int
from swapagent.signing.base import TransactionSigner

logger = logging.getLogger(__name__)

BlockId = Union[int, str]

# ERC20 selectors
BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"

# Numeric transaction fields accepted from aggregators as int, hex or decimal string
NUMERIC_TX_FIELDS = (
    "value",
    "gas",
    "gasPrice",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "nonce",
    "chainId",
    "type",
)


def _block_param(block: BlockId) -> str:
    return to_hex(block) if isinstance(block, int) else block


class ChainClient:
    """Async wrapper around an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._transport = transport
        self._chain_id: Optional[int] = None

    async def _rpc(self, method: str, params: list) -> Any:
        """Execute a JSON-RPC call and return its result.

        Raises:
            RpcError: If the node returns an error object
            ChainError: On transport failures or malformed responses
        """
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} transport error: {e}")
            raise ChainError(f"RPC request {method} failed: {e}") from e

        if response.status_code != 200:
            raise ChainError(f"RPC {method} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ChainError(f"RPC {method} returned invalid JSON") from e

        if "error" in data and data["error"]:
            error = data["error"]
            raise RpcError(error.get("code"), error.get("message", "unknown error"), error.get("data"))

        return data.get("result")

    # Reads
    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = to_int(await self._rpc("eth_chainId", []))
        return self._chain_id

    async def get_block_number(self) -> int:
        return to_int(await self._rpc("eth_blockNumber", []))

    async def get_balance(self, address: str, block: BlockId = "latest") -> int:
        """Get native balance in wei."""
        return to_int(await self._rpc("eth_getBalance", [address, _block_param(block)]))

    async def get_transaction_count(self, address: str, block: BlockId = "latest") -> int:
        """Get nonce for an address.

        Args:
            address: Wallet address
            block: "latest" for confirmed count, "pending" to include the mempool
        """
        return to_int(await self._rpc("eth_getTransactionCount", [address, _block_param(block)]))

    async def get_gas_price(self) -> int:
        return to_int(await self._rpc("eth_gasPrice", []))

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        result = await self._rpc("eth_getTransactionByHash", [tx_hash])
        if not result:
            raise TransactionNotFoundError(f"Transaction {tx_hash} not found")
        return ChainTransaction.from_rpc(result)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """Get a receipt, or None while the transaction is still pending."""
        result = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not result:
            return None
        return TxReceipt.from_rpc(result)

    async def get_block(self, block: BlockId = "latest") -> Optional[dict]:
        return await self._rpc("eth_getBlockByNumber", [_block_param(block), False])

    async def call(self, to: str, data: str, block: BlockId = "latest") -> str:
        return await self._rpc("eth_call", [{"to": to, "data": data}, _block_param(block)])

    async def get_token_balance(self, token_address: str, owner: str) -> int:
        """Get ERC20 balance in raw units."""
        data = BALANCE_OF_SELECTOR + owner[2:].lower().zfill(64)
        result = await self.call(token_address, data)
        return to_int(result) if result and result != "0x" else 0

    async def get_token_decimals(self, token_address: str) -> int:
        result = await self.call(token_address, DECIMALS_SELECTOR)
        if not result or result == "0x":
            raise ChainError(f"Token {token_address} does not expose decimals()")
        return to_int(result)

    async def estimate_gas(self, tx: dict) -> int:
        params = {k: (to_hex(v) if isinstance(v, int) else v) for k, v in tx.items()}
        return to_int(await self._rpc("eth_estimateGas", [params]))

    async def trace_transaction(self, tx_hash: str) -> dict:
        """Get the internal call tree of a transaction.

        Requires a node exposing the debug namespace; raises RpcError otherwise.
        """
        result = await self._rpc("debug_traceTransaction", [tx_hash, {"tracer": "callTracer"}])
        if not isinstance(result, dict):
            raise ChainError(f"Unexpected trace result for {tx_hash}")
        return result

    # Writes
    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        raw_hex = raw_tx.hex()
        if not raw_hex.startswith("0x"):
            raw_hex = f"0x{raw_hex}"
        tx_hash = await self._rpc("eth_sendRawTransaction", [raw_hex])
        if not tx_hash:
            raise ChainError("Node accepted transaction but returned no hash")
        return tx_hash

    async def send_transaction(self, signer: TransactionSigner, tx: dict) -> str:
        """Fill missing fields, sign and broadcast a transaction.

        Fields already present (nonce, gas, fees) are never overridden.

        Returns:
            Transaction hash
        """
        prepared = self._normalize_transaction(tx)

        if "chainId" not in prepared:
            prepared["chainId"] = await self.get_chain_id()
        if "nonce" not in prepared:
            prepared["nonce"] = await self.get_transaction_count(signer.address, "pending")

        if "maxFeePerGas" in prepared:
            prepared.pop("gasPrice", None)
            prepared.setdefault(
                "maxPriorityFeePerGas", min(prepared["maxFeePerGas"], 10**9)
            )
        elif "gasPrice" not in prepared:
            prepared["gasPrice"] = await self.get_gas_price()

        if "gas" not in prepared:
            estimate_tx = {k: v for k, v in prepared.items() if k in ("to", "data", "value")}
            estimate_tx["from"] = signer.address
            prepared["gas"] = await self.estimate_gas(estimate_tx)

        raw_tx = signer.sign_transaction(prepared)
        tx_hash = await self.send_raw_transaction(raw_tx)
        logger.info(f"Broadcast tx {tx_hash} from {signer.address} nonce={prepared['nonce']}")
        return tx_hash

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float,
        poll_interval: float = 2.0,
    ) -> TxReceipt:
        """Poll for a receipt until it appears.

        Raises:
            ConfirmationTimeoutError: If no receipt is available within timeout
        """

        async def _poll() -> TxReceipt:
            while True:
                try:
                    receipt = await self.get_transaction_receipt(tx_hash)
                    if receipt is not None:
                        return receipt
                except ChainError as e:
                    logger.warning(f"Receipt poll for {tx_hash} failed: {e}")
                await asyncio.sleep(poll_interval)

        try:
            return await asyncio.wait_for(_poll(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {timeout}s waiting for {tx_hash}")
            raise ConfirmationTimeoutError(tx_hash, timeout)

    @staticmethod
    def _normalize_transaction(tx: dict) -> dict:
        """Convert an aggregator or hand-built transaction into signable fields."""
        prepared: dict[str, Any] = {}
        for key, value in tx.items():
            if value is None:
                continue
            if key == "gasLimit":
                key = "gas"
            if key == "from":
                continue
            if key in NUMERIC_TX_FIELDS:
                prepared[key] = to_int(value)
            elif key == "to":
                prepared[key] = Web3.to_checksum_address(value)
            elif key in ("data", "input"):
                prepared["data"] = value if str(value).startswith("0x") else f"0x{value}"
            else:
                prepared[key] = value
        prepared.setdefault("value", 0)
        return prepared
