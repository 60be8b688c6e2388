import logging

from celery import shared_task

from chats.services import ExpiryMonitor

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True, max_retries=3, default_retry_delay=30)
def expire_session(self, session_uuid: str):
    """
    Countdown task queued for a session's `expires_at`.

    Uses acks_late=True so a worker crash re-delivers the task; running it
    twice, or before the session is due, changes nothing.
    """
    try:
        expired = ExpiryMonitor.expire_session(session_uuid)
    except Exception as exc:
        logger.exception(
            "Unexpected error expiring session=%s: %s", session_uuid, str(exc)
        )
        raise self.retry(exc=exc, countdown=2**self.request.retries * 10)

    return {"session": session_uuid, "expired": expired}


@shared_task
def sweep_expired_sessions():
    """
    Periodic task: end every ACTIVE session and subscription whose expiry
    has passed. Backstop for countdowns that never ran.

    Runs via Celery Beat every EXPIRY_SWEEP_INTERVAL seconds.
    """
    sessions = ExpiryMonitor.sweep_expired_sessions()
    subscriptions = ExpiryMonitor.sweep_expired_subscriptions()

    if sessions or subscriptions:
        logger.info(
            "Expiry sweep: %d session(s), %d subscription(s) expired.",
            len(sessions),
            len(subscriptions),
        )

    return {"sessions": len(sessions), "subscriptions": len(subscriptions)}
