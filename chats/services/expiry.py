import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from chats.exceptions import SessionExpired, SessionNotActive, Unauthorized
from chats.models import ChatSession, Subscription

logger = logging.getLogger(__name__)


class ExpiryMonitor:
    """
    Server-side authority for ending sessions when their time is up.

    Every new session gets a countdown task scheduled for its `expires_at`;
    a periodic sweep catches anything a countdown missed (worker restarts,
    far-future expiries). Both paths go through expire_session, which is
    idempotent: only the first caller flips ACTIVE to EXPIRED.
    """

    @staticmethod
    def expire_session(session_uuid, now=None) -> bool:
        """Expire one session if it is still ACTIVE and past its expiry."""
        now = now or timezone.now()
        expired = ChatSession.objects.transition(
            session_uuid, ChatSession.Status.EXPIRED, now=now
        )
        if expired:
            logger.info("Session expired: session=%s at=%s", session_uuid, now)
        return expired

    @staticmethod
    def sweep_expired_sessions(now=None) -> list:
        now = now or timezone.now()
        due = list(
            ChatSession.objects.due_for_expiry(now).values_list("uuid", flat=True)
        )
        expired = [
            session_uuid
            for session_uuid in due
            if ExpiryMonitor.expire_session(session_uuid, now=now)
        ]
        if expired:
            logger.info("Expiry sweep ended %d session(s).", len(expired))
        return expired

    @staticmethod
    def complete_session(session_uuid, principal_id) -> ChatSession:
        """
        Voluntarily end an ACTIVE session on behalf of one of its participants.

        Raises:
            ChatSession.DoesNotExist: If the session doesn't exist.
            Unauthorized: If the principal is not the user or the mentor.
            SessionNotActive: If the session already reached a terminal status.
            SessionExpired: If the session ran out of time before this call.
        """
        session = ChatSession.objects.get(uuid=session_uuid)
        if not session.is_participant(principal_id):
            raise Unauthorized()
        if session.status != ChatSession.Status.ACTIVE:
            raise SessionNotActive(status=session.status)

        now = timezone.now()
        if session.has_expired(now):
            ExpiryMonitor.expire_session(session_uuid, now=now)
            raise SessionExpired()

        if not ChatSession.objects.transition(
            session_uuid, ChatSession.Status.COMPLETED, now=now
        ):
            session.refresh_from_db()
            raise SessionNotActive(status=session.status)

        session.refresh_from_db()
        logger.info(
            "Session completed: session=%s by=%s", session_uuid, principal_id
        )
        return session

    @staticmethod
    def expire_subscription(subscription_uuid, now=None) -> bool:
        """
        Mark one subscription EXPIRED once past its expiry.

        Sessions opened from it keep their own copied `expires_at` and are
        ended by expire_session, not here.
        """
        now = now or timezone.now()
        updated = Subscription.objects.filter(
            uuid=subscription_uuid,
            status=Subscription.Status.ACTIVE,
            expires_at__lte=now,
        ).update(status=Subscription.Status.EXPIRED, updated_at=now)
        if updated:
            logger.info("Subscription expired: subscription=%s", subscription_uuid)
        return bool(updated)

    @staticmethod
    def sweep_expired_subscriptions(now=None) -> list:
        now = now or timezone.now()
        due = list(
            Subscription.objects.filter(
                status=Subscription.Status.ACTIVE, expires_at__lte=now
            ).values_list("uuid", flat=True)
        )
        return [
            subscription_uuid
            for subscription_uuid in due
            if ExpiryMonitor.expire_subscription(subscription_uuid, now=now)
        ]

    @staticmethod
    def schedule(session: ChatSession) -> None:
        """
        Queue the countdown task for a freshly opened session once the
        surrounding transaction commits.

        Expiries further away than EXPIRY_COUNTDOWN_HORIZON are left to the
        periodic sweep, since brokers redeliver long-delayed messages.
        """
        from chats.tasks import expire_session

        horizon = timedelta(
            seconds=getattr(settings, "EXPIRY_COUNTDOWN_HORIZON", 6 * 3600)
        )
        if session.expires_at - timezone.now() > horizon:
            return

        session_uuid = str(session.uuid)
        expires_at = session.expires_at

        def enqueue():
            try:
                expire_session.apply_async(args=[session_uuid], eta=expires_at)
            except Exception:
                logger.exception(
                    "Could not schedule expiry for session=%s; the sweep will end it.",
                    session_uuid,
                )

        transaction.on_commit(enqueue)
