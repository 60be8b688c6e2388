from chats.models.mentor import MentorProfile
from chats.models.subscription import Subscription
from chats.models.session import ChatSession
from chats.models.message import Message

__all__ = ["MentorProfile", "Subscription", "ChatSession", "Message"]
