"""Alerting module: Telegram gateway and the notification delivery queue."""

from goalwatch.alerting.queue import DeliveryOutcome, NotificationQueue, PendingNotification
from goalwatch.alerting.telegram import GatewayError, NotificationGateway, TelegramGateway

__all__ = [
    "NotificationQueue",
    "PendingNotification",
    "DeliveryOutcome",
    "NotificationGateway",
    "TelegramGateway",
    "GatewayError",
]
