import uuid

from django.db import models
from django.utils import timezone

from wallets.models.base import BaseModel


class Subscription(BaseModel):
    """
    A prepaid unlimited-chat pass with one mentor.

    `expires_at` is fixed at purchase time (7 or 30 days after `started_at`).
    The stored status is flipped to EXPIRED by the expiry sweep; until then
    `is_active_at` also checks the clock.
    """

    class PackageType(models.TextChoices):
        WEEK = "WEEK", "Week"
        MONTH = "MONTH", "Month"

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        EXPIRED = "EXPIRED", "Expired"

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    user_id = models.CharField(max_length=64, db_index=True)
    mentor_id = models.CharField(max_length=64, db_index=True)
    package_type = models.CharField(max_length=5, choices=PackageType.choices)
    amount_paid = models.BigIntegerField()
    status = models.CharField(
        max_length=7,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    started_at = models.DateTimeField()
    expires_at = models.DateTimeField()

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(fields=["status", "expires_at"], name="idx_sub_status_expiry"),
        ]

    def __str__(self):
        return (
            f"Subscription {self.uuid} | {self.package_type} | "
            f"user={self.user_id} mentor={self.mentor_id} | {self.status}"
        )

    def is_active_at(self, now=None):
        now = now or timezone.now()
        return self.status == self.Status.ACTIVE and now < self.expires_at

    @property
    def effective_status(self):
        return self.Status.ACTIVE if self.is_active_at() else self.Status.EXPIRED
