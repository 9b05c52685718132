"""Progress notifications for chat transports."""

from swapagent.notifications.sink import NotificationSink
from swapagent.notifications.telegram import TelegramNotifier, close_bot

__all__ = ["NotificationSink", "TelegramNotifier", "close_bot"]
