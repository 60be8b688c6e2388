from rest_framework import serializers

from chats.models import Message


class PostMessageSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=True)


class MessageSerializer(serializers.ModelSerializer):
    session_uuid = serializers.UUIDField(source="session.uuid", read_only=True)

    class Meta:
        model = Message
        fields = ("id", "session_uuid", "sender_id", "content", "created_at")
        read_only_fields = fields
