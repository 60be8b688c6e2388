from rest_framework import status
from rest_framework.response import Response

from chats.models import Subscription
from chats.serializers import (
    ChatSessionSerializer,
    PurchaseSubscriptionSerializer,
    SubscriptionSerializer,
)
from chats.services import SessionOpener
from chats.views.base import ChatAPIView
from tradeguru.utils import idempotency_key_from


class SubscriptionListCreateView(ChatAPIView):
    """
    GET  /chats/subscriptions/ — The caller's subscriptions, newest first.
    POST /chats/subscriptions/ — Buy a weekly or monthly pass.

    Request body: {"mentor_id": "<id>", "package_type": "WEEK"|"MONTH"}
    """

    def get(self, request, *args, **kwargs):
        queryset = Subscription.objects.filter(user_id=request.user.id).order_by(
            "-created_at"
        )
        return Response(SubscriptionSerializer(queryset, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = PurchaseSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        subscription = SessionOpener.purchase_subscription(
            user_id=request.user.id,
            mentor_id=serializer.validated_data["mentor_id"],
            package_type=serializer.validated_data["package_type"],
            subscription_uuid=idempotency_key_from(request),
        )
        return Response(
            SubscriptionSerializer(subscription).data,
            status=status.HTTP_201_CREATED,
        )


class SubscriptionSessionView(ChatAPIView):
    """POST /chats/subscriptions/<uuid>/sessions — Start a chat covered by a pass."""

    def post(self, request, uuid, *args, **kwargs):
        session = SessionOpener.open_subscription_session(
            user_id=request.user.id,
            subscription_uuid=uuid,
            session_uuid=idempotency_key_from(request),
        )
        return Response(
            ChatSessionSerializer(session).data,
            status=status.HTTP_201_CREATED,
        )
