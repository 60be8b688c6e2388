from chats.services.pricing import PricingResolver, ProductKind
from chats.services.expiry import ExpiryMonitor
from chats.services.opener import SessionOpener
from chats.services.feed import MessageFeed

__all__ = [
    "PricingResolver",
    "ProductKind",
    "ExpiryMonitor",
    "SessionOpener",
    "MessageFeed",
]
