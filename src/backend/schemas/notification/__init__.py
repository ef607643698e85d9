"""Notification schemas package."""
from .notification import PushNotification

__all__ = ["PushNotification"]
