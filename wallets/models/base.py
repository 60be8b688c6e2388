from django.db import models


class BaseModel(models.Model):
    """
    Abstract base for mutable records (wallets, sessions, subscriptions,
    price sheets). Append-only records such as ledger entries and chat
    messages carry only `created_at` and do not inherit from this.
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]
