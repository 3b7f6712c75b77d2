from .events import CommerceEvent
from .dispatcher import dispatch_commerce_event
from .service import NotificationService, get_notifier

__all__ = [
    "CommerceEvent",
    "dispatch_commerce_event",
    "NotificationService",
    "get_notifier",
]
