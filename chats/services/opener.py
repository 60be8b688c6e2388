import logging
import time
import uuid
from datetime import timedelta

from django.conf import settings
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.utils import timezone

from chats.exceptions import (
    SubscriptionExpired,
    SubscriptionNotActive,
    Unauthorized,
)
from chats.models import ChatSession, Subscription
from chats.services.expiry import ExpiryMonitor
from chats.services.pricing import PricingResolver
from wallets.exceptions import DuplicateCharge
from wallets.models import Transaction
from wallets.services import LedgerService

logger = logging.getLogger(__name__)

TRANSIENT_STORE_ERRORS = (OperationalError, InterfaceError)


def _with_retries(operation, reserved_id):
    """
    Run `operation` again on transient store failures, up to
    SESSION_OPEN_MAX_ATTEMPTS times. Each attempt runs in its own database
    transaction, so a failed attempt leaves nothing behind and the next one
    reuses the same reserved id.
    """
    max_attempts = getattr(settings, "SESSION_OPEN_MAX_ATTEMPTS", 3)
    delay = getattr(settings, "SESSION_OPEN_RETRY_DELAY", 0.05)

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except TRANSIENT_STORE_ERRORS as exc:
            if attempt >= max_attempts:
                logger.error(
                    "Store unavailable, giving up: reference=%s attempts=%d error=%s",
                    reserved_id,
                    attempt,
                    exc,
                )
                raise
            logger.warning(
                "Transient store failure: reference=%s attempt=%d/%d error=%s",
                reserved_id,
                attempt,
                max_attempts,
                exc,
            )
            if delay:
                time.sleep(delay * attempt)


def _replay(existing, user_id, kind, **expected):
    if existing.user_id != user_id:
        logger.warning(
            "Reserved %s id reused by another user: id=%s user=%s",
            kind,
            existing.uuid,
            user_id,
        )
        raise Unauthorized(f"This {kind} id belongs to another user.")
    mismatched = sorted(
        field
        for field, value in expected.items()
        if str(getattr(existing, field)) != str(value)
    )
    if mismatched:
        logger.warning(
            "Reserved %s id reused for a different request: id=%s fields=%s",
            kind,
            existing.uuid,
            ",".join(mismatched),
        )
        raise DuplicateCharge(
            f"This {kind} id was already used for a different request.",
            fields=mismatched,
        )
    logger.info("Idempotent %s request: id=%s", kind, existing.uuid)
    return existing


def _quick_fields(mentor_id, duration_minutes):
    return {
        "session_type": ChatSession.SessionType.QUICK,
        "mentor_id": mentor_id,
        "duration_minutes": duration_minutes,
    }


def _subscription_session_fields(subscription_uuid):
    return {
        "session_type": ChatSession.SessionType.SUBSCRIPTION,
        "subscription_uuid": subscription_uuid,
    }


def _refuse_if_taken(model, reserved_id, kind):
    """A reserved id pays for exactly one record, whichever table it lands in."""
    if model.objects.filter(uuid=reserved_id).exists():
        logger.warning(
            "Reserved id already used by a %s: id=%s", model.__name__, reserved_id
        )
        raise DuplicateCharge(
            f"This {kind} id was already used for a different request.",
            reference_id=str(reserved_id),
        )


class SessionOpener:
    """
    Turns wallet money into chat access.

    Every paid open reserves the id of the record it will create before
    touching the wallet, debits with that id as the ledger reference, and
    creates the record in the same database transaction. A failure at any
    step rolls back both; a retry with the same id either finds the record
    already created or starts again from scratch, and the ledger never
    accepts a second DEBIT for one reference.
    """

    @staticmethod
    def open_quick_session(
        user_id: str, mentor_id: str, duration_minutes: int, session_uuid=None
    ) -> ChatSession:
        """
        Charge the user's wallet and open a time-boxed session with a mentor.

        Raises:
            ProductNotOffered: If the mentor doesn't sell this duration.
            InsufficientFunds: If the wallet can't cover the price.
            Unauthorized: If the reserved id belongs to another user's session.
            DuplicateCharge: If the reserved id was used for a different request.
            ValueError: If the user tries to book themselves.
        """
        session_uuid = session_uuid or uuid.uuid4()
        def attempt():
            return SessionOpener._open_quick(
                user_id, mentor_id, duration_minutes, session_uuid
            )

        try:
            return _with_retries(attempt, session_uuid)
        except IntegrityError:
            # Lost a race against a concurrent request with the same id.
            existing = ChatSession.objects.filter(uuid=session_uuid).first()
            if existing is None:
                raise
            return _replay(
                existing, user_id, "session", **_quick_fields(mentor_id, duration_minutes)
            )

    @staticmethod
    @transaction.atomic
    def _open_quick(user_id, mentor_id, duration_minutes, session_uuid):
        existing = ChatSession.objects.filter(uuid=session_uuid).first()
        if existing:
            return _replay(
                existing, user_id, "session", **_quick_fields(mentor_id, duration_minutes)
            )
        _refuse_if_taken(Subscription, session_uuid, "session")

        if user_id == mentor_id:
            raise ValueError("Mentors cannot book a session with themselves.")

        product = PricingResolver.quick_product(duration_minutes)
        price = PricingResolver.quote(mentor_id, product)

        wallet, _ = LedgerService.get_or_create_wallet(user_id)
        LedgerService.apply_transaction(
            wallet.uuid,
            Transaction.TransactionType.DEBIT,
            price,
            Transaction.Purpose.CHAT_SESSION,
            reference_id=session_uuid,
        )

        now = timezone.now()
        session = ChatSession.objects.create(
            uuid=session_uuid,
            user_id=user_id,
            mentor_id=mentor_id,
            session_type=ChatSession.SessionType.QUICK,
            duration_minutes=duration_minutes,
            amount_paid=price,
            status=ChatSession.Status.ACTIVE,
            started_at=now,
            expires_at=now + timedelta(minutes=duration_minutes),
        )
        ExpiryMonitor.schedule(session)

        logger.info(
            "Quick session opened: session=%s user=%s mentor=%s minutes=%d "
            "price=%d expires_at=%s",
            session.uuid,
            user_id,
            mentor_id,
            duration_minutes,
            price,
            session.expires_at,
        )
        return session

    @staticmethod
    def open_subscription_session(
        user_id: str, subscription_uuid, session_uuid=None
    ) -> ChatSession:
        """
        Open a chat covered by an existing subscription. Nothing is charged.

        The session's `expires_at` is a copy of the subscription's expiry at
        this moment; a later renewal does not extend it.

        Raises:
            Subscription.DoesNotExist: If the subscription doesn't exist.
            Unauthorized: If the subscription belongs to another user.
            SubscriptionNotActive: If the subscription is no longer ACTIVE.
            SubscriptionExpired: If the subscription's expiry has passed.
            DuplicateCharge: If the reserved id was used for a different request.
        """
        session_uuid = session_uuid or uuid.uuid4()

        def attempt():
            return SessionOpener._open_for_subscription(
                user_id, subscription_uuid, session_uuid
            )

        try:
            return _with_retries(attempt, session_uuid)
        except SubscriptionExpired:
            ExpiryMonitor.expire_subscription(subscription_uuid)
            raise
        except IntegrityError:
            existing = ChatSession.objects.filter(uuid=session_uuid).first()
            if existing is None:
                raise
            return _replay(
                existing, user_id, "session", **_subscription_session_fields(subscription_uuid)
            )

    @staticmethod
    @transaction.atomic
    def _open_for_subscription(user_id, subscription_uuid, session_uuid):
        existing = ChatSession.objects.filter(uuid=session_uuid).first()
        if existing:
            return _replay(
                existing, user_id, "session", **_subscription_session_fields(subscription_uuid)
            )
        _refuse_if_taken(Subscription, session_uuid, "session")

        subscription = Subscription.objects.get(uuid=subscription_uuid)
        if subscription.user_id != user_id:
            raise Unauthorized("This subscription belongs to another user.")
        if subscription.status != Subscription.Status.ACTIVE:
            raise SubscriptionNotActive(status=subscription.status)

        now = timezone.now()
        if now >= subscription.expires_at:
            raise SubscriptionExpired()

        session = ChatSession.objects.create(
            uuid=session_uuid,
            user_id=user_id,
            mentor_id=subscription.mentor_id,
            session_type=ChatSession.SessionType.SUBSCRIPTION,
            subscription=subscription,
            duration_minutes=None,
            amount_paid=0,
            status=ChatSession.Status.ACTIVE,
            started_at=now,
            expires_at=subscription.expires_at,
        )
        ExpiryMonitor.schedule(session)

        logger.info(
            "Subscription session opened: session=%s subscription=%s user=%s "
            "mentor=%s expires_at=%s",
            session.uuid,
            subscription.uuid,
            user_id,
            subscription.mentor_id,
            session.expires_at,
        )
        return session

    @staticmethod
    def purchase_subscription(
        user_id: str, mentor_id: str, package_type: str, subscription_uuid=None
    ) -> Subscription:
        """
        Charge the user's wallet for a weekly or monthly pass with a mentor.

        Raises:
            ProductNotOffered: If the mentor doesn't sell this package.
            InsufficientFunds: If the wallet can't cover the price.
            Unauthorized: If the reserved id belongs to another user's subscription.
            DuplicateCharge: If the reserved id was used for a different request.
            ValueError: If the user tries to subscribe to themselves.
        """
        subscription_uuid = subscription_uuid or uuid.uuid4()

        def attempt():
            return SessionOpener._purchase(
                user_id, mentor_id, package_type, subscription_uuid
            )

        try:
            return _with_retries(attempt, subscription_uuid)
        except IntegrityError:
            existing = Subscription.objects.filter(uuid=subscription_uuid).first()
            if existing is None:
                raise
            return _replay(
                existing,
                user_id,
                "subscription",
                mentor_id=mentor_id,
                package_type=package_type,
            )

    @staticmethod
    @transaction.atomic
    def _purchase(user_id, mentor_id, package_type, subscription_uuid):
        existing = Subscription.objects.filter(uuid=subscription_uuid).first()
        if existing:
            return _replay(
                existing,
                user_id,
                "subscription",
                mentor_id=mentor_id,
                package_type=package_type,
            )
        _refuse_if_taken(ChatSession, subscription_uuid, "subscription")

        if user_id == mentor_id:
            raise ValueError("Mentors cannot subscribe to themselves.")

        product = PricingResolver.subscription_product(package_type)
        price = PricingResolver.quote(mentor_id, product)

        wallet, _ = LedgerService.get_or_create_wallet(user_id)
        LedgerService.apply_transaction(
            wallet.uuid,
            Transaction.TransactionType.DEBIT,
            price,
            Transaction.Purpose.SUBSCRIPTION,
            reference_id=subscription_uuid,
        )

        now = timezone.now()
        subscription = Subscription.objects.create(
            uuid=subscription_uuid,
            user_id=user_id,
            mentor_id=mentor_id,
            package_type=package_type,
            amount_paid=price,
            status=Subscription.Status.ACTIVE,
            started_at=now,
            expires_at=now + PricingResolver.subscription_length(package_type),
        )

        logger.info(
            "Subscription purchased: subscription=%s user=%s mentor=%s package=%s "
            "price=%d expires_at=%s",
            subscription.uuid,
            user_id,
            mentor_id,
            package_type,
            price,
            subscription.expires_at,
        )
        return subscription
