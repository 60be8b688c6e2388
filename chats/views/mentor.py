from django.db.models import Q, Sum
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response

from chats.exceptions import Unauthorized
from chats.models import ChatSession, MentorProfile, Subscription
from chats.serializers import MentorProfileSerializer, MentorStatsSerializer
from chats.views.base import ChatAPIView
from wallets.models import Transaction


class MentorProfileView(ChatAPIView):
    """
    GET /chats/mentors/<mentor_id>/prices — Public profile and price sheet.
    PUT /chats/mentors/<mentor_id>/prices — Upsert, by that mentor only.
    """

    def get(self, request, mentor_id, *args, **kwargs):
        profile = MentorProfile.objects.get(mentor_id=mentor_id)
        return Response(MentorProfileSerializer(profile).data)

    def put(self, request, mentor_id, *args, **kwargs):
        if not request.user.is_mentor or request.user.id != mentor_id:
            raise Unauthorized("Only the mentor can edit this price sheet.")

        profile, created = MentorProfile.objects.get_or_create(mentor_id=mentor_id)
        serializer = MentorProfileSerializer(profile, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(
            serializer.data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class MentorStatsView(ChatAPIView):
    """GET /chats/mentors/<mentor_id>/stats — Earnings and session counts."""

    def get(self, request, mentor_id, *args, **kwargs):
        if request.user.id != mentor_id:
            raise Unauthorized("Only the mentor can see these statistics.")

        sessions = ChatSession.objects.filter(mentor_id=mentor_id)
        subscriptions = Subscription.objects.filter(mentor_id=mentor_id)
        earnings = Transaction.objects.filter(
            Q(reference_id__in=sessions.values("uuid"))
            | Q(reference_id__in=subscriptions.values("uuid")),
            transaction_type=Transaction.TransactionType.DEBIT,
        ).aggregate(total=Sum("amount"))["total"]

        stats = {
            "total_earnings": earnings or 0,
            "active_sessions": sessions.filter(status=ChatSession.Status.ACTIVE).count(),
            "completed_sessions": sessions.filter(
                status=ChatSession.Status.COMPLETED
            ).count(),
            "active_subscriptions": subscriptions.filter(
                status=Subscription.Status.ACTIVE, expires_at__gt=timezone.now()
            ).count(),
        }
        return Response(MentorStatsSerializer(stats).data)
