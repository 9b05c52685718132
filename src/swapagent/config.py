"""Application configuration using pydantic-settings.

Settings are loaded once at process start and passed into each component's
constructor. The instance is frozen so no component can mutate shared config.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/swapagent.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ======================
    # Chain
    # ======================
    chain_name: str = Field(default="base", description="Aggregator slug of the default chain")
    rpc_url: str = Field(default="https://mainnet.base.org", description="EVM JSON-RPC URL")
    native_symbol: str = Field(default="ETH", description="Native asset symbol")
    explorer_tx_url: str = Field(
        default="https://basescan.org/tx/", description="Explorer URL prefix for transactions"
    )
    http_timeout: float = Field(default=30.0, description="Transport timeout in seconds")

    # ======================
    # Swing aggregator
    # ======================
    swing_api_key: str = Field(default="", description="Swing API key")
    swing_project_id: str = Field(default="peasy", description="Swing project identifier")
    swing_api_url: str = Field(
        default="https://swap.prod.swing.xyz/v0", description="Swing swap API URL"
    )
    swing_platform_url: str = Field(
        default="https://platform.swing.xyz/api/v1", description="Swing platform API URL"
    )
    quote_max_slippage: float = Field(
        default=0.10, description="Max slippage forwarded to the aggregator quote"
    )
    quote_gasless: bool = Field(default=True, description="Request gasless quotes")

    # ======================
    # Key vault
    # ======================
    key_salt: str = Field(default="", description="Salt used to encrypt wallet secrets")

    # ======================
    # Swap guards
    # ======================
    min_gas_reserve: Decimal = Field(
        default=Decimal("0.0001"), description="Minimum native balance required to swap"
    )
    confirmation_timeout: float = Field(
        default=30.0, description="Seconds to wait for swap confirmation"
    )
    approval_confirmation_timeout: float = Field(
        default=60.0, description="Seconds to wait for approval confirmation"
    )
    max_call_data_length: int = Field(
        default=4000, description="Max call-data length for token-to-token routes"
    )
    min_swap_gas_limit: int = Field(default=400_000, description="Gas limit floor for swaps")
    min_max_fee_per_gas_gwei: Decimal = Field(
        default=Decimal("1"), description="maxFeePerGas floor in gwei"
    )
    min_priority_fee_gwei: Decimal = Field(
        default=Decimal("1"), description="maxPriorityFeePerGas floor in gwei"
    )
    default_max_slippage_percent: Decimal = Field(
        default=Decimal("1"), description="Tolerated deviation from the approved rate"
    )
    wallet_lock_timeout: float = Field(
        default=120.0, description="Seconds to wait for another swap on the same wallet"
    )

    # ======================
    # Nonce guard
    # ======================
    cancel_max_fee_gwei: Decimal = Field(
        default=Decimal("3"), description="maxFeePerGas for cancellation transactions"
    )
    cancel_priority_fee_gwei: Decimal = Field(
        default=Decimal("2"), description="maxPriorityFeePerGas for cancellation transactions"
    )

    # ======================
    # Commission
    # ======================
    commission_wallet: str = Field(default="", description="Company commission wallet")
    commission_usd: Decimal = Field(
        default=Decimal("0.0025"), description="Commission target in USD"
    )
    min_commission_native: Decimal = Field(
        default=Decimal("0.0000005"), description="Lower bound of commission in native units"
    )
    max_commission_native: Decimal = Field(
        default=Decimal("0.000005"), description="Upper bound of commission in native units"
    )
    commission_fallback_rate: Decimal = Field(
        default=Decimal("2500"), description="USD per native unit when the rate lookup fails"
    )
    commission_memo: str = Field(
        default="swapagent commission", description="Memo attached to commission transfers"
    )
    commission_confirmation_timeout: float = Field(
        default=30.0, description="Seconds to wait for commission confirmation"
    )
    price_api_url: str = Field(
        default="https://api.coinbase.com/v2/prices", description="Spot price API URL"
    )

    # ======================
    # Notifications
    # ======================
    telegram_bot_token: str = Field(default="", description="Telegram bot token from BotFather")
    notification_queue_size: int = Field(
        default=100, description="Pending progress messages kept per swap"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "telegram_bot_token": "***" if self.telegram_bot_token else "(not set)",
            "chain": {
                "name": self.chain_name,
                "rpc": self._redact_url(self.rpc_url),
                "native_symbol": self.native_symbol,
            },
            "aggregator": {
                "project_id": self.swing_project_id,
                "api_key": "***" if self.swing_api_key else "(not set)",
                "max_slippage": self.quote_max_slippage,
            },
            "vault": {"salt": "***" if self.key_salt else "(not set)"},
            "commission": {
                "wallet": self.commission_wallet or "(not set)",
                "usd": str(self.commission_usd),
                "band": [str(self.min_commission_native), str(self.max_commission_native)],
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials embedded in a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
