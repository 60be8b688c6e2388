import logging

from rest_framework import status
from rest_framework.response import Response

from chats.exceptions import Unauthorized
from chats.models import ChatSession
from chats.serializers import ChatSessionSerializer, OpenQuickSessionSerializer
from chats.services import ExpiryMonitor, SessionOpener
from chats.views.base import ChatAPIView
from tradeguru.utils import idempotency_key_from

logger = logging.getLogger(__name__)

STATUS_FILTERS = {"ACTIVE", "COMPLETED", "EXPIRED", "PENDING_PAYMENT"}


class SessionListCreateView(ChatAPIView):
    """
    GET  /chats/sessions/?status=ACTIVE|COMPLETED|EXPIRED|ALL — The caller's
         sessions as user or mentor, newest first (default ACTIVE).
    POST /chats/sessions/ — Buy and open a quick session.

    Request body: {"mentor_id": "<id>", "duration_minutes": 10|20}
    Header: Idempotency-Key (optional UUID) reserves the session id; retrying
    with the same key never charges twice.
    """

    def get(self, request, *args, **kwargs):
        queryset = (
            ChatSession.objects.for_participant(request.user.id)
            .select_related("subscription")
            .order_by("-created_at")
        )
        status_filter = request.query_params.get("status", "ACTIVE").upper()
        if status_filter != "ALL":
            if status_filter not in STATUS_FILTERS:
                raise ValueError(f"Unknown status filter: {status_filter}")
            queryset = queryset.filter(status=status_filter)
        return Response(ChatSessionSerializer(queryset, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = OpenQuickSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = SessionOpener.open_quick_session(
            user_id=request.user.id,
            mentor_id=serializer.validated_data["mentor_id"],
            duration_minutes=serializer.validated_data["duration_minutes"],
            session_uuid=idempotency_key_from(request),
        )
        return Response(
            ChatSessionSerializer(session).data,
            status=status.HTTP_201_CREATED,
        )


class SessionDetailView(ChatAPIView):
    """
    GET /chats/sessions/<uuid>/ — Current state of one session.

    Also the way to resolve an open request whose outcome is unknown.
    """

    def get(self, request, uuid, *args, **kwargs):
        session = ChatSession.objects.select_related("subscription").get(uuid=uuid)
        if not session.is_participant(request.user.id):
            raise Unauthorized()
        return Response(ChatSessionSerializer(session).data)


class CompleteSessionView(ChatAPIView):
    """POST /chats/sessions/<uuid>/complete — End a session early."""

    def post(self, request, uuid, *args, **kwargs):
        session = ExpiryMonitor.complete_session(uuid, request.user.id)
        return Response(ChatSessionSerializer(session).data)
