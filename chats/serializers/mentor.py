from rest_framework import serializers

from chats.models import MentorProfile


class MentorProfileSerializer(serializers.ModelSerializer):
    price_per_10min = serializers.IntegerField(min_value=0, required=False)
    price_per_20min = serializers.IntegerField(min_value=0, required=False)
    price_per_week = serializers.IntegerField(min_value=0, required=False)
    price_per_month = serializers.IntegerField(min_value=0, required=False)

    class Meta:
        model = MentorProfile
        fields = (
            "mentor_id",
            "specialization",
            "experience_years",
            "bio",
            "price_per_10min",
            "price_per_20min",
            "price_per_week",
            "price_per_month",
            "updated_at",
        )
        read_only_fields = ("mentor_id", "updated_at")


class MentorStatsSerializer(serializers.Serializer):
    total_earnings = serializers.IntegerField()
    active_sessions = serializers.IntegerField()
    completed_sessions = serializers.IntegerField()
    active_subscriptions = serializers.IntegerField()
