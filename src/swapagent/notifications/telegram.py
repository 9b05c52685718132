"""Telegram delivery target for swap progress.

Uses a singleton pattern to share the bot instance.
"""

import asyncio
import html
import logging
from decimal import Decimal
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from swapagent.notifications.sink import NotificationSink
from swapagent.swap.models import SwapResult

logger = logging.getLogger(__name__)

# Singleton bot instance
_bot_instance: Optional[Bot] = None
_bot_lock = asyncio.Lock()


async def get_bot(token: str) -> Optional[Bot]:
    """Get or create the bot instance for notifications."""
    global _bot_instance

    if _bot_instance is not None:
        return _bot_instance

    async with _bot_lock:
        # Double-check after acquiring lock
        if _bot_instance is not None:
            return _bot_instance

        if not token:
            logger.warning("Telegram bot token not configured - notifications disabled")
            return None

        _bot_instance = Bot(token=token)
        return _bot_instance


async def close_bot() -> None:
    """Close the bot session (call on shutdown)."""
    global _bot_instance
    if _bot_instance is not None:
        await _bot_instance.session.close()
        _bot_instance = None


class TelegramNotifier:
    """Sends swap progress messages to a Telegram chat."""

    def __init__(self, token: str = "", bot: Optional[Bot] = None):
        self._token = token
        self._bot = bot

    async def _get_bot(self) -> Optional[Bot]:
        if self._bot:
            return self._bot
        return await get_bot(self._token)

    async def send_message(
        self,
        chat_id: int,
        message: str,
        parse_mode: Optional[str] = None,
    ) -> bool:
        """Send a message to a chat.

        Args:
            chat_id: Telegram chat ID
            message: Message text
            parse_mode: Optional parse mode (HTML, Markdown, etc.)

        Returns:
            True if message was sent successfully
        """
        bot = await self._get_bot()
        if not bot:
            logger.warning("Cannot send notification - bot not initialized")
            return False

        try:
            await bot.send_message(chat_id=chat_id, text=message, parse_mode=parse_mode)
            return True
        except TelegramForbiddenError:
            logger.warning(f"Chat {chat_id} has blocked the bot")
            return False
        except TelegramBadRequest as e:
            logger.error(f"Bad request sending to {chat_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to send notification to {chat_id}: {e}")
            return False

    def progress_sink(self, chat_id: int, max_size: int = 100) -> NotificationSink:
        """Create a sink that streams swap progress to a chat."""

        async def deliver(message: str) -> bool:
            return await self.send_message(chat_id, message)

        return NotificationSink(deliver, max_size=max_size, name=f"telegram-{chat_id}")

    async def notify_swap_result(self, chat_id: int, result: SwapResult, explorer_tx_url: str = "") -> bool:
        """Send the final outcome of an executed swap.

        Args:
            chat_id: Telegram chat ID
            result: Result returned by the swap service
            explorer_tx_url: Explorer prefix for the transaction link

        Returns:
            True if notification was sent
        """
        if not result.is_success:
            message = f"<b>Swap Failed</b>\n\n{html.escape(result.reason)}"
            if result.tx_hash:
                message += f"\n\nTX: <code>{result.tx_hash}</code>"
            return await self.send_message(chat_id, message, parse_mode="HTML")

        received = result.actual_amount_received or result.amount_received
        message = (
            f"<b>Swap Completed</b>\n\n"
            f"Sent: <code>{_fmt(result.amount_sent)} {result.token_in.symbol}</code>\n"
            f"Received: <code>{_fmt(received)} {result.token_out.symbol}</code>\n"
        )
        if result.gas_fee_native:
            message += f"Gas: <code>{_fmt(result.gas_fee_native)}</code>\n"
        if result.tx_hash:
            # Truncate hash for display
            short_hash = f"{result.tx_hash[:8]}...{result.tx_hash[-8:]}" if len(result.tx_hash) > 20 else result.tx_hash
            message += f'TX: <a href="{explorer_tx_url}{result.tx_hash}">{short_hash}</a>\n'

        return await self.send_message(chat_id, message, parse_mode="HTML")


def _fmt(amount: Decimal) -> str:
    return f"{amount:,.8f}".rstrip("0").rstrip(".")
