import json
import logging

from django.http import StreamingHttpResponse
from rest_framework import status
from rest_framework.response import Response

from chats.exceptions import Unauthorized
from chats.models import ChatSession
from chats.serializers import MessageSerializer, PostMessageSerializer
from chats.services import MessageFeed
from chats.views.base import ChatAPIView

logger = logging.getLogger(__name__)


def _after_id(request):
    raw = request.query_params.get("after") or request.META.get("HTTP_LAST_EVENT_ID") or 0
    try:
        after_id = int(raw)
    except (TypeError, ValueError):
        raise ValueError("after must be a message id.")
    if after_id < 0:
        raise ValueError("after must be a message id.")
    return after_id


class MessageListCreateView(ChatAPIView):
    """
    GET  /chats/sessions/<uuid>/messages/?after=<id> — Replay messages after a cursor.
    POST /chats/sessions/<uuid>/messages/ — Post a message while the session is open.

    Request body: {"content": "<text>"}
    """

    def get(self, request, uuid, *args, **kwargs):
        messages = MessageFeed.history(uuid, request.user.id, after_id=_after_id(request))
        return Response(MessageSerializer(messages, many=True).data)

    def post(self, request, uuid, *args, **kwargs):
        serializer = PostMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        message = MessageFeed.post(
            uuid, request.user.id, serializer.validated_data["content"]
        )
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


def _server_sent_events(session_uuid, after_id):
    for message in MessageFeed.subscribe(session_uuid, after_id=after_id):
        payload = json.dumps(MessageSerializer(message).data, default=str)
        yield f"id: {message.id}\nevent: message\ndata: {payload}\n\n"

    session = ChatSession.objects.get(uuid=session_uuid)
    yield f"event: end\ndata: {json.dumps({'status': session.status})}\n\n"


class MessageStreamView(ChatAPIView):
    """
    GET /chats/sessions/<uuid>/stream?after=<id> — Push channel (server-sent
    events) of new messages.

    Reconnecting clients resume with `after` or the Last-Event-ID header and
    must drop messages whose id they have already rendered.
    """

    def get(self, request, uuid, *args, **kwargs):
        session = ChatSession.objects.get(uuid=uuid)
        if not session.is_participant(request.user.id):
            raise Unauthorized()

        after_id = _after_id(request)
        logger.info(
            "Feed subscription opened: session=%s principal=%s after=%d",
            uuid,
            request.user.id,
            after_id,
        )
        response = StreamingHttpResponse(
            _server_sent_events(session.uuid, after_id),
            content_type="text/event-stream",
        )
        response["Cache-Control"] = "no-cache"
        response["X-Accel-Buffering"] = "no"
        return response
