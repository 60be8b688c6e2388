from rest_framework import serializers

from chats.models import Subscription


class PurchaseSubscriptionSerializer(serializers.Serializer):
    mentor_id = serializers.CharField(max_length=64)
    package_type = serializers.ChoiceField(choices=Subscription.PackageType.choices)


class SubscriptionSerializer(serializers.ModelSerializer):
    effective_status = serializers.CharField(read_only=True)

    class Meta:
        model = Subscription
        fields = (
            "uuid",
            "user_id",
            "mentor_id",
            "package_type",
            "amount_paid",
            "status",
            "effective_status",
            "started_at",
            "expires_at",
        )
        read_only_fields = fields
