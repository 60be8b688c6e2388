from chats.serializers.mentor import MentorProfileSerializer, MentorStatsSerializer
from chats.serializers.session import (
    ChatSessionSerializer,
    OpenQuickSessionSerializer,
)
from chats.serializers.subscription import (
    PurchaseSubscriptionSerializer,
    SubscriptionSerializer,
)
from chats.serializers.message import MessageSerializer, PostMessageSerializer

__all__ = [
    "MentorProfileSerializer",
    "MentorStatsSerializer",
    "ChatSessionSerializer",
    "OpenQuickSessionSerializer",
    "PurchaseSubscriptionSerializer",
    "SubscriptionSerializer",
    "MessageSerializer",
    "PostMessageSerializer",
]
