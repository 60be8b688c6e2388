from rest_framework import serializers

from chats.models import ChatSession


class OpenQuickSessionSerializer(serializers.Serializer):
    """Validates quick-chat purchase requests."""

    mentor_id = serializers.CharField(max_length=64)
    duration_minutes = serializers.IntegerField(min_value=1)


class ChatSessionSerializer(serializers.ModelSerializer):
    """
    Read-only session view. `remaining_seconds` is derived from the stored
    expiry at response time; clients rebuild their countdown from it.
    """

    subscription_uuid = serializers.UUIDField(
        source="subscription.uuid", read_only=True, allow_null=True
    )
    remaining_seconds = serializers.SerializerMethodField()

    class Meta:
        model = ChatSession
        fields = (
            "uuid",
            "user_id",
            "mentor_id",
            "session_type",
            "subscription_uuid",
            "duration_minutes",
            "amount_paid",
            "status",
            "started_at",
            "expires_at",
            "ended_at",
            "remaining_seconds",
        )
        read_only_fields = fields

    def get_remaining_seconds(self, obj):
        return obj.remaining_seconds()
