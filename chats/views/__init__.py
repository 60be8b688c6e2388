from chats.views.mentor import MentorProfileView, MentorStatsView
from chats.views.session import (
    CompleteSessionView,
    SessionDetailView,
    SessionListCreateView,
)
from chats.views.subscription import (
    SubscriptionListCreateView,
    SubscriptionSessionView,
)
from chats.views.message import MessageListCreateView, MessageStreamView

__all__ = [
    "MentorProfileView",
    "MentorStatsView",
    "SessionListCreateView",
    "SessionDetailView",
    "CompleteSessionView",
    "SubscriptionListCreateView",
    "SubscriptionSessionView",
    "MessageListCreateView",
    "MessageStreamView",
]
