"""wicked portal API adapter.

Manages the applications and subscriptions this tool provisions.
"""

from wicked.autodeploy.gateway.models import (
    Application,
    ApplicationPatch,
    ClientType,
    Subscription,
    SubscriptionRequest,
)
from wicked.autodeploy.gateway.client import WickedClient

__all__ = [
    "Application",
    "ApplicationPatch",
    "ClientType",
    "Subscription",
    "SubscriptionRequest",
    "WickedClient",
]
