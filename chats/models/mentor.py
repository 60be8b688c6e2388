from django.db import models

from wallets.models.base import BaseModel


class MentorProfile(BaseModel):
    """
    A mentor's public profile and price sheet.

    Prices are in the smallest currency unit; a price of 0 means the mentor
    does not offer that product.
    """

    mentor_id = models.CharField(max_length=64, unique=True)
    specialization = models.CharField(max_length=120, blank=True, default="")
    experience_years = models.PositiveIntegerField(default=0)
    bio = models.TextField(blank=True, default="")
    price_per_10min = models.BigIntegerField(default=0)
    price_per_20min = models.BigIntegerField(default=0)
    price_per_week = models.BigIntegerField(default=0)
    price_per_month = models.BigIntegerField(default=0)

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_per_10min__gte=0)
                & models.Q(price_per_20min__gte=0)
                & models.Q(price_per_week__gte=0)
                & models.Q(price_per_month__gte=0),
                name="mentor_prices_non_negative",
            ),
        ]

    def __str__(self):
        return f"MentorProfile {self.mentor_id}"
