"""Swing cross-chain swap aggregator client.

Thin HTTP façade: no business decisions are made here. Error payloads are
propagated as AggregatorError so callers can classify them.
API docs: https://developers.swing.xyz
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from swapagent.aggregator.errors import AggregatorError
from swapagent.swap.models import ChainInfo, RouteQuote, Token

logger = logging.getLogger(__name__)

SWING_API_URL = "https://swap.prod.swing.xyz/v0"
SWING_PLATFORM_URL = "https://platform.swing.xyz/api/v1"


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


class SwingClient:
    """Async client for the Swing transfer and platform APIs."""

    def __init__(
        self,
        api_key: str,
        project_id: str,
        api_url: str = SWING_API_URL,
        platform_url: str = SWING_PLATFORM_URL,
        timeout: float = 30.0,
        max_slippage: float = 0.10,
        gasless: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.api_url = api_url.rstrip("/")
        self.platform_url = platform_url.rstrip("/")
        self.timeout = timeout
        self.max_slippage = max_slippage
        self.gasless = gasless
        self._transport = transport

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        endpoint: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method, url, params=params, json=json, headers=self._get_headers()
                )
        except httpx.HTTPError as e:
            logger.error(f"Swing {endpoint} transport error: {e}")
            raise AggregatorError(f"Swing {endpoint} request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = response.text

        if response.status_code >= 400:
            error = AggregatorError.from_response(response.status_code, body, endpoint)
            logger.error(f"Swing {endpoint} error {response.status_code}: {error}")
            raise error

        return body

    # Platform endpoints
    async def list_chains(self) -> list[dict]:
        url = f"{self.platform_url}/projects/{self.project_id}/chains"
        return await self._request("GET", url, "chains")

    async def get_chain(self, chain: str) -> Optional[ChainInfo]:
        """Get metadata for a chain slug, or None if unsupported."""
        slug = chain.lower()
        for item in await self.list_chains():
            if item.get("slug") == slug:
                native = item.get("nativeToken") or {}
                return ChainInfo(
                    slug=slug,
                    chain_id=item.get("id"),
                    native_symbol=native.get("symbol", ""),
                )
        return None

    async def list_tokens(self, chain: str) -> list[Token]:
        """List tokens supported on a chain."""
        url = f"{self.platform_url}/projects/{self.project_id}/tokens"
        data = await self._request("GET", url, "tokens")
        slug = chain.lower()
        tokens = []
        for item in data:
            if item.get("chain") != slug:
                continue
            tokens.append(
                Token(
                    chain=slug,
                    symbol=str(item.get("symbol", "")).upper(),
                    address=item.get("address", ""),
                    decimals=int(item.get("decimals", 18)),
                )
            )
        return tokens

    async def find_tokens(self, chain: str, *symbols: str) -> list[Optional[Token]]:
        """Look up tokens by symbol, keeping argument order. Missing symbols map to None."""
        by_symbol: dict[str, Token] = {}
        for token in await self.list_tokens(chain):
            # First listing wins when a symbol is duplicated
            by_symbol.setdefault(token.symbol, token)
        return [by_symbol.get(symbol.upper()) for symbol in symbols]

    # Transfer endpoints
    async def get_quote(
        self,
        chain: str,
        token_in: Token,
        token_out: Token,
        wallet_address: str,
        amount_raw: int,
    ) -> list[RouteQuote]:
        """Get ranked routes for a same-chain swap.

        Returns:
            Routes in aggregator order, possibly empty
        """
        params = {
            "fromChain": chain,
            "fromTokenAddress": token_in.address,
            "fromUserAddress": wallet_address,
            "tokenSymbol": token_in.symbol,
            "toTokenAddress": token_out.address,
            "toChain": chain,
            "tokenAmount": str(amount_raw),
            "toTokenSymbol": token_out.symbol,
            "toUserAddress": wallet_address,
            "projectId": self.project_id,
            "gasless": str(self.gasless).lower(),
            "maxSlippage": self.max_slippage,
        }
        data = await self._request("GET", f"{self.api_url}/transfer/quote", "quote", params=params)

        routes = []
        for rank, item in enumerate((data or {}).get("routes") or []):
            quote = item.get("quote") or {}
            routes.append(
                RouteQuote(
                    amount_out=int(_to_decimal(quote.get("amount", 0))),
                    fees_usd=[_to_decimal(fee.get("amountUSD", 0)) for fee in quote.get("fees", [])],
                    route=list(item.get("route") or []),
                    integration=quote.get("integration", ""),
                    distribution=dict(item.get("distribution") or {}),
                    rank=rank,
                    raw=item,
                )
            )
        logger.info(f"Swing quote {token_in.symbol}->{token_out.symbol}: {len(routes)} routes")
        return routes

    def _allowance_params(self, chain: str, token_in: Token, token_out: Token, bridge: str, wallet_address: str) -> dict:
        return {
            "fromChain": chain,
            "tokenSymbol": token_in.symbol,
            "tokenAddress": token_in.address,
            "bridge": bridge,
            "fromAddress": wallet_address,
            "toChain": chain,
            "toTokenSymbol": token_out.symbol,
            "toTokenAddress": token_out.address,
            "projectId": self.project_id,
        }

    async def get_allowance(
        self,
        chain: str,
        token_in: Token,
        token_out: Token,
        bridge: str,
        wallet_address: str,
    ) -> int:
        """Get the allowance granted to a bridge contract, in raw units."""
        params = self._allowance_params(chain, token_in, token_out, bridge, wallet_address)
        data = await self._request(
            "GET", f"{self.api_url}/transfer/allowance", "allowance", params=params
        )
        return int(_to_decimal((data or {}).get("allowance", 0)))

    async def get_approval_call_data(
        self,
        chain: str,
        token_in: Token,
        token_out: Token,
        bridge: str,
        wallet_address: str,
        amount_raw: int,
    ) -> list[dict]:
        """Get approval transactions for a bridge contract."""
        params = self._allowance_params(chain, token_in, token_out, bridge, wallet_address)
        params["tokenAmount"] = str(amount_raw)
        data = await self._request(
            "GET", f"{self.api_url}/transfer/approve", "approve", params=params
        )
        txs = (data or {}).get("tx") or []
        if isinstance(txs, dict):
            txs = [txs]
        if not txs:
            raise AggregatorError("Swing approve returned no transaction", payload=data)
        return txs

    async def get_send_call_data(
        self,
        chain: str,
        token_in: Token,
        token_out: Token,
        wallet_address: str,
        amount_raw: int,
        route: list[dict],
    ) -> dict:
        """Get the signed-ready swap transaction for a route."""
        payload = {
            "fromChain": chain,
            "tokenSymbol": token_in.symbol,
            "fromTokenAddress": token_in.address,
            "fromUserAddress": wallet_address,
            "toChain": chain,
            "toTokenSymbol": token_out.symbol,
            "toTokenAddress": token_out.address,
            "toUserAddress": wallet_address,
            "tokenAmount": str(amount_raw),
            "projectId": self.project_id,
            "route": route,
        }
        data = await self._request("POST", f"{self.api_url}/transfer/send", "send", json=payload)
        tx = (data or {}).get("tx")
        if not tx:
            raise AggregatorError("Swing send returned no transaction", payload=data)
        return dict(tx)
