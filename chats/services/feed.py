import logging
import time
from typing import Iterator, List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from chats.exceptions import SessionExpired, SessionNotActive, Unauthorized
from chats.models import ChatSession, Message
from chats.services.expiry import ExpiryMonitor

logger = logging.getLogger(__name__)


class MessageFeed:
    """
    Ordered, append-only message stream of one session.

    Posting locks the session row, so a message and a status change of the
    same session are serialized: nothing is written after a session ends.
    Readers resume from the last message id they saw; duplicates are
    possible across reconnects, gaps and reordering are not.
    """

    @staticmethod
    def post(session_uuid, sender_id: str, content: str) -> Message:
        """
        Append a message to an ACTIVE session.

        The clock is checked here as well: a session past its expiry rejects
        the message even if the expiry monitor has not flipped it yet, and
        the rejected post flips it.

        Raises:
            ChatSession.DoesNotExist: If the session doesn't exist.
            Unauthorized: If the sender is neither the user nor the mentor.
            SessionNotActive: If the session is COMPLETED or EXPIRED.
            SessionExpired: If the session is ACTIVE but out of time.
            ValueError: If the content is empty or too long.
        """
        content = (content or "").strip()
        if not content:
            raise ValueError("Message content cannot be empty.")
        max_length = getattr(settings, "MESSAGE_MAX_LENGTH", 4000)
        if len(content) > max_length:
            raise ValueError(f"Message content cannot exceed {max_length} characters.")

        try:
            return MessageFeed._append(session_uuid, sender_id, content)
        except SessionExpired:
            ExpiryMonitor.expire_session(session_uuid)
            raise

    @staticmethod
    @transaction.atomic
    def _append(session_uuid, sender_id, content):
        session = ChatSession.objects.select_for_update().get(uuid=session_uuid)

        if not session.is_participant(sender_id):
            logger.warning(
                "Message refused (not a participant): session=%s sender=%s",
                session_uuid,
                sender_id,
            )
            raise Unauthorized()
        if session.status != ChatSession.Status.ACTIVE:
            raise SessionNotActive(status=session.status)
        if session.has_expired(timezone.now()):
            logger.info("Message refused (session out of time): session=%s", session_uuid)
            raise SessionExpired()

        message = Message.objects.create(
            session=session, sender_id=sender_id, content=content
        )
        logger.debug("Message posted: session=%s message=%d", session_uuid, message.id)
        return message

    @staticmethod
    def history(session_uuid, principal_id: str, after_id: int = 0, limit=None) -> List[Message]:
        """Messages after `after_id` in posting order, for participants only."""
        session = ChatSession.objects.get(uuid=session_uuid)
        if not session.is_participant(principal_id):
            raise Unauthorized()
        limit = limit or getattr(settings, "FEED_PAGE_SIZE", 100)
        return list(
            Message.objects.filter(session=session, id__gt=after_id)
            .select_related("session")
            .order_by("id")[:limit]
        )

    @staticmethod
    def subscribe(session_uuid, after_id: int = 0, poll_interval=None) -> Iterator[Message]:
        """
        Lazily yield every message of the session after `after_id`, in order,
        as it is posted.

        Polls the store while the session is open. Once the session is
        terminal (or out of time) and everything posted has been delivered,
        the generator returns, since no further message can be written.
        """
        poll_interval = (
            poll_interval
            if poll_interval is not None
            else getattr(settings, "FEED_POLL_INTERVAL", 1.0)
        )
        page_size = getattr(settings, "FEED_PAGE_SIZE", 100)
        session = ChatSession.objects.get(uuid=session_uuid)
        messages = Message.objects.filter(session=session).select_related("session")
        last_id = after_id

        while True:
            batch = list(messages.filter(id__gt=last_id).order_by("id")[:page_size])
            for message in batch:
                last_id = message.id
                yield message
            if batch:
                continue

            session.refresh_from_db(fields=["status", "expires_at"])
            if session.is_terminal or session.has_expired():
                # A post that passed its checks holds this lock until it commits.
                with transaction.atomic():
                    ChatSession.objects.select_for_update().get(pk=session.pk)
                    remaining = list(messages.filter(id__gt=last_id).order_by("id"))
                yield from remaining
                return

            time.sleep(poll_interval)
