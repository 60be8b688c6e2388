import logging
from datetime import timedelta

from django.conf import settings
from django.db import models

from chats.exceptions import ProductNotOffered
from chats.models import MentorProfile, Subscription

logger = logging.getLogger(__name__)


class ProductKind(models.TextChoices):
    QUICK_10 = "QUICK_10", "10-minute chat"
    QUICK_20 = "QUICK_20", "20-minute chat"
    SUB_WEEK = "SUB_WEEK", "Weekly pass"
    SUB_MONTH = "SUB_MONTH", "Monthly pass"


PRICE_FIELDS = {
    ProductKind.QUICK_10: "price_per_10min",
    ProductKind.QUICK_20: "price_per_20min",
    ProductKind.SUB_WEEK: "price_per_week",
    ProductKind.SUB_MONTH: "price_per_month",
}

QUICK_DURATIONS = {
    10: ProductKind.QUICK_10,
    20: ProductKind.QUICK_20,
}

PACKAGE_PRODUCTS = {
    Subscription.PackageType.WEEK: ProductKind.SUB_WEEK,
    Subscription.PackageType.MONTH: ProductKind.SUB_MONTH,
}


class PricingResolver:
    """Reads prices from a mentor's current price sheet. No side effects."""

    @staticmethod
    def quote(mentor_id: str, product_kind: str) -> int:
        """
        Return the price of one product for the given mentor.

        Raises:
            ProductNotOffered: If the mentor has no price sheet or the price is zero.
        """
        field = PRICE_FIELDS.get(product_kind)
        if field is None:
            raise ProductNotOffered(f"Unknown product: {product_kind}")

        price = (
            MentorProfile.objects.filter(mentor_id=mentor_id)
            .values_list(field, flat=True)
            .first()
        )
        if not price or price <= 0:
            logger.info(
                "Product not offered: mentor=%s product=%s", mentor_id, product_kind
            )
            raise ProductNotOffered(mentor_id=mentor_id, product=product_kind)
        return price

    @staticmethod
    def quick_product(duration_minutes: int) -> str:
        product = QUICK_DURATIONS.get(duration_minutes)
        if product is None:
            raise ProductNotOffered(
                f"Quick chats are offered for {sorted(QUICK_DURATIONS)} minutes only."
            )
        return product

    @staticmethod
    def subscription_product(package_type: str) -> str:
        product = PACKAGE_PRODUCTS.get(package_type)
        if product is None:
            raise ProductNotOffered(f"Unknown subscription package: {package_type}")
        return product

    @staticmethod
    def subscription_length(package_type: str) -> timedelta:
        if package_type == Subscription.PackageType.WEEK:
            return timedelta(days=getattr(settings, "SUBSCRIPTION_WEEK_DAYS", 7))
        return timedelta(days=getattr(settings, "SUBSCRIPTION_MONTH_DAYS", 30))
