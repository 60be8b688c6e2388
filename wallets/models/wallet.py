import uuid

from django.db import models

from wallets.models.base import BaseModel


class Wallet(BaseModel):
    """
    Prepaid balance held by one user, in the smallest currency unit.

    `balance` is a materialized projection of the wallet's transaction log:
    it is only ever changed by LedgerService.apply_transaction, in the same
    database transaction that appends the matching Transaction row. The
    check constraint is a last line of defence against going negative.
    """

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    owner_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Opaque id of the owning user from the identity service.",
    )
    balance = models.BigIntegerField(default=0)

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0), name="wallet_balance_non_negative"
            ),
        ]

    def __str__(self):
        return f"Wallet {self.uuid} owner={self.owner_id} (balance={self.balance})"
