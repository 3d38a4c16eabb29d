from .dispatch import Notification, dispatch_notification, dispatch_notifications

__all__ = ["Notification", "dispatch_notification", "dispatch_notifications"]
