from rest_framework import status

from tradeguru.exceptions import DomainError


class ChatError(DomainError):
    code = "chat_error"


class ProductNotOffered(ChatError):
    """The mentor has no non-zero price configured for the requested product."""

    code = "product_not_offered"
    default_message = "This mentor does not offer the requested product."


class SessionNotActive(ChatError):
    code = "session_not_active"
    status_code = status.HTTP_409_CONFLICT
    action = "leave_chat"
    default_message = "This session is no longer active."


class SessionExpired(ChatError):
    code = "session_expired"
    status_code = status.HTTP_409_CONFLICT
    action = "leave_chat"
    default_message = "Session time has expired."


class SubscriptionNotActive(ChatError):
    code = "subscription_not_active"
    status_code = status.HTTP_409_CONFLICT
    action = "leave_chat"
    default_message = "This subscription is no longer active."


class SubscriptionExpired(ChatError):
    code = "subscription_expired"
    status_code = status.HTTP_409_CONFLICT
    action = "leave_chat"
    default_message = "This subscription has expired."


class Unauthorized(ChatError):
    """The principal is not a participant of the session or subscription."""

    code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not a participant of this chat."
