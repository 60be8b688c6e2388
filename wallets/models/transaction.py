from django.db import models

from wallets.models.wallet import Wallet


class Transaction(models.Model):
    """
    Append-only ledger entry for one wallet balance change.

    `amount` is always a positive magnitude; the sign comes from
    `transaction_type`. Every DEBIT references the session or subscription
    that caused it, and at most one DEBIT may exist per reference.
    Rows are never updated or deleted once written.
    """

    class TransactionType(models.TextChoices):
        CREDIT = "CREDIT", "Credit"
        DEBIT = "DEBIT", "Debit"

    class Purpose(models.TextChoices):
        RECHARGE = "RECHARGE", "Recharge"
        CHAT_SESSION = "CHAT_SESSION", "Chat session"
        SUBSCRIPTION = "SUBSCRIPTION", "Subscription"

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    transaction_type = models.CharField(
        max_length=6,
        choices=TransactionType.choices,
    )
    amount = models.BigIntegerField()
    purpose = models.CharField(
        max_length=12,
        choices=Purpose.choices,
    )
    reference_id = models.UUIDField(
        help_text="Session, subscription or recharge that caused this entry.",
    )
    idempotency_key = models.UUIDField(
        unique=True,
        null=True,
        blank=True,
        editable=False,
        help_text="Client-generated UUID for idempotent recharges.",
    )
    balance_after = models.BigIntegerField(
        help_text="Wallet balance right after this entry was applied.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0), name="transaction_amount_positive"
            ),
            models.UniqueConstraint(
                fields=["reference_id"],
                condition=models.Q(transaction_type="DEBIT"),
                name="uniq_debit_per_reference",
            ),
        ]
        indexes = [
            models.Index(fields=["wallet", "-id"], name="idx_wallet_recent"),
        ]

    def __str__(self):
        return (
            f"Transaction {self.id} | {self.transaction_type} | "
            f"{self.amount} | {self.purpose}"
        )

    @property
    def signed_amount(self):
        if self.transaction_type == self.TransactionType.DEBIT:
            return -self.amount
        return self.amount

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Ledger transactions are immutable once written.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Ledger transactions cannot be deleted.")
