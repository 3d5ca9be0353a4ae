"""Services layer for fxsentiment."""

from .notifications import (
    NotificationEngine,
    NotificationResult,
    create_notification_engine,
)

__all__ = ["NotificationEngine", "NotificationResult", "create_notification_engine"]
