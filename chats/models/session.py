import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from wallets.models.base import BaseModel


class ChatSessionQuerySet(models.QuerySet):
    def for_participant(self, principal_id):
        return self.filter(Q(user_id=principal_id) | Q(mentor_id=principal_id))

    def due_for_expiry(self, now=None):
        now = now or timezone.now()
        return self.filter(status=self.model.Status.ACTIVE, expires_at__lte=now)

    def transition(self, session_uuid, to_status, now=None) -> bool:
        """
        Move one ACTIVE session to a terminal status.

        The conditional UPDATE makes this exactly-once: concurrent callers
        race on `status = ACTIVE` and only one of them changes the row.
        EXPIRED is only applied once `expires_at` has passed. Returns True
        if this call performed the transition.
        """
        Status = self.model.Status
        if to_status not in (Status.COMPLETED, Status.EXPIRED):
            raise ValueError(f"{to_status} is not a terminal session status.")

        now = now or timezone.now()
        queryset = self.filter(uuid=session_uuid, status=Status.ACTIVE)
        if to_status == Status.EXPIRED:
            queryset = queryset.filter(expires_at__lte=now)
        return bool(queryset.update(status=to_status, ended_at=now, updated_at=now))


class ChatSession(BaseModel):
    """
    A paid chat between one user and one mentor.

    Status only moves forward: PENDING_PAYMENT -> ACTIVE -> COMPLETED|EXPIRED.
    `expires_at` never changes after creation; for subscription sessions it
    is a copy of the subscription's expiry at the time the session opened.
    """

    class SessionType(models.TextChoices):
        QUICK = "QUICK", "Quick"
        SUBSCRIPTION = "SUBSCRIPTION", "Subscription"

    class Status(models.TextChoices):
        PENDING_PAYMENT = "PENDING_PAYMENT", "Pending payment"
        ACTIVE = "ACTIVE", "Active"
        COMPLETED = "COMPLETED", "Completed"
        EXPIRED = "EXPIRED", "Expired"

    TERMINAL_STATUSES = (Status.COMPLETED, Status.EXPIRED)

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    user_id = models.CharField(max_length=64, db_index=True)
    mentor_id = models.CharField(max_length=64, db_index=True)
    session_type = models.CharField(max_length=12, choices=SessionType.choices)
    subscription = models.ForeignKey(
        "chats.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sessions",
    )
    duration_minutes = models.PositiveSmallIntegerField(null=True, blank=True)
    amount_paid = models.BigIntegerField(default=0)
    status = models.CharField(
        max_length=15,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
    )
    started_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    ended_at = models.DateTimeField(null=True, blank=True)

    objects = ChatSessionQuerySet.as_manager()

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(session_type="SUBSCRIPTION", subscription__isnull=False)
                    | Q(session_type="QUICK", subscription__isnull=True)
                ),
                name="session_subscription_matches_type",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="idx_session_status_expiry"),
        ]

    def __str__(self):
        return (
            f"ChatSession {self.uuid} | {self.session_type} | "
            f"user={self.user_id} mentor={self.mentor_id} | {self.status}"
        )

    @property
    def subscription_uuid(self):
        return self.subscription.uuid if self.subscription_id else None

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def is_participant(self, principal_id):
        return principal_id in (self.user_id, self.mentor_id)

    def has_expired(self, now=None):
        now = now or timezone.now()
        return now >= self.expires_at

    def remaining_seconds(self, now=None):
        """Seconds left before expiry, derived from the stored expiry instant."""
        if self.status != self.Status.ACTIVE:
            return 0
        now = now or timezone.now()
        return max(0, int((self.expires_at - now).total_seconds()))
