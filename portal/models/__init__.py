from .admin_activity import AdminActivityLog
from .api_token import ApiToken
from .subscription import Subscription, SubscriptionStatus
from .user import User
from .webhook_event import WebhookEvent

__all__ = [
    "AdminActivityLog",
    "ApiToken",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "WebhookEvent",
]
