"""Platform commission collected in the native asset after a swap.

The fee targets a fixed USD amount converted at the live USD/native rate and
clamped to a configured band. Collection never fails the swap it follows.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from swapagent.chain.client import ChainClient
from swapagent.config import Settings
from swapagent.signing.base import TransactionSigner
from swapagent.swap.action_log import ActionLog
from swapagent.swap.models import CommissionResult

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18


class RateLookupError(Exception):
    """Raised when the spot rate cannot be fetched or parsed."""

    pass


class NativeRateSource:
    """USD price of the native asset from the Coinbase spot price API."""

    def __init__(
        self,
        api_url: str = "https://api.coinbase.com/v2/prices",
        native_symbol: str = "ETH",
        quote_currency: str = "USD",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.native_symbol = native_symbol.upper()
        self.quote_currency = quote_currency.upper()
        self.timeout = timeout
        self._transport = transport

    async def get_usd_rate(self) -> Decimal:
        """Get USD per one native unit.

        Raises:
            RateLookupError: On transport, HTTP or parsing failures
        """
        url = f"{self.api_url}/{self.native_symbol}-{self.quote_currency}/spot"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RateLookupError(f"Spot price request failed: {e}") from e

        try:
            return Decimal(str(data["data"]["amount"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise RateLookupError(f"Unexpected spot price payload: {data}") from e


class CommissionCollector:
    """Computes and sends the platform commission."""

    def __init__(
        self,
        chain: ChainClient,
        rate_source: NativeRateSource,
        destination_wallet: str,
        commission_usd: Decimal,
        min_native: Decimal,
        max_native: Decimal,
        fallback_rate: Decimal,
        memo: str = "",
        confirmation_timeout: float = 30.0,
    ):
        if min_native > max_native:
            raise ValueError("Commission band minimum exceeds maximum")
        self.chain = chain
        self.rate_source = rate_source
        self.destination_wallet = destination_wallet
        self.commission_usd = commission_usd
        self.min_native = min_native
        self.max_native = max_native
        self.fallback_rate = fallback_rate
        self.memo = memo
        self.confirmation_timeout = confirmation_timeout

    @classmethod
    def from_settings(
        cls,
        chain: ChainClient,
        settings: Settings,
        rate_source: Optional[NativeRateSource] = None,
    ) -> "CommissionCollector":
        if rate_source is None:
            rate_source = NativeRateSource(
                api_url=settings.price_api_url,
                native_symbol=settings.native_symbol,
                timeout=settings.http_timeout,
            )
        return cls(
            chain=chain,
            rate_source=rate_source,
            destination_wallet=settings.commission_wallet,
            commission_usd=settings.commission_usd,
            min_native=settings.min_commission_native,
            max_native=settings.max_commission_native,
            fallback_rate=settings.commission_fallback_rate,
            memo=settings.commission_memo,
            confirmation_timeout=settings.commission_confirmation_timeout,
        )

    async def compute_amount(self) -> Decimal:
        """Commission in native units, always within [min_native, max_native]."""
        try:
            rate = await self.rate_source.get_usd_rate()
        except RateLookupError as e:
            logger.warning(f"Using fallback rate {self.fallback_rate} for commission: {e}")
            rate = self.fallback_rate

        if rate <= 0:
            # No usable rate: charge the ceiling
            amount = self.max_native
        else:
            amount = self.commission_usd / rate

        return min(max(amount, self.min_native), self.max_native)

    async def collect(self, signer: TransactionSigner, log: Optional[ActionLog] = None) -> CommissionResult:
        """Send the commission transfer and wait for it.

        Never raises: any failure yields a zero-amount result.
        """
        if log is None:
            log = ActionLog(prefix="[Commission] ")

        if not self.destination_wallet:
            log.add("Commission wallet not configured - skipping commission")
            return CommissionResult(Decimal("0"), "", error="Commission wallet not configured")

        try:
            log.add("Sending commission to company wallet")
            amount = await self.compute_amount()
            tx = {
                "to": self.destination_wallet,
                "value": int(amount * WEI_PER_ETH),
                "data": "0x" + self.memo.encode("utf-8").hex(),
            }
            tx_hash = await self.chain.send_transaction(signer, tx)
            log.add(f"Commission transaction sent: {tx_hash}")

            receipt = await self.chain.wait_for_receipt(tx_hash, timeout=self.confirmation_timeout)
            log.add(
                f"Commission tx hash: {tx_hash}, Status: {'SUCCESS' if receipt.succeeded else 'FAILED'}"
            )
            if not receipt.succeeded:
                return CommissionResult(
                    Decimal("0"), self.destination_wallet, tx_hash=tx_hash, error="Commission reverted"
                )
            return CommissionResult(amount, self.destination_wallet, tx_hash=tx_hash)

        except Exception as e:
            log.add(f"Commission transaction failed: {e}")
            logger.warning(f"Commission from {signer.address} failed: {e}")
            return CommissionResult(Decimal("0"), self.destination_wallet, error=str(e))
