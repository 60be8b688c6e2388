from django.conf import settings
from rest_framework import serializers


class RechargeSerializer(serializers.Serializer):
    """Validates simulated wallet top-ups."""

    amount = serializers.IntegerField(min_value=1)

    def validate_amount(self, value):
        max_amount = getattr(settings, "RECHARGE_MAX_AMOUNT", 1_000_000)
        if value > max_amount:
            raise serializers.ValidationError(
                f"Recharge amount cannot exceed {max_amount}."
            )
        return value
