#Marks notifications as a package.
#Re-exports the push gateway client.
#No business logic.

from .expo_client import ExpoPushClient, ExpoPushError, PushMessage, is_expo_push_token

__all__ = [
    "ExpoPushClient",
    "ExpoPushError",
    "PushMessage",
    "is_expo_push_token",
]
