import logging

from django.utils.dateparse import parse_datetime
from rest_framework import status
from rest_framework.generics import RetrieveAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from wallets.models import Transaction, Wallet
from wallets.serializers import TransactionSerializer
from wallets.services import LedgerService

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _datetime_param(request, name):
    raw = request.query_params.get(name)
    if not raw:
        return None
    value = parse_datetime(raw)
    if value is None:
        raise ValueError(f"{name} must be an ISO 8601 datetime.")
    return value


class TransactionListView(APIView):
    """
    GET /wallets/<uuid>/transactions/ — Ledger entries, most recent first.

    Query params:
        - type: CREDIT or DEBIT
        - purpose: RECHARGE, CHAT_SESSION or SUBSCRIPTION
        - limit: page size (default 20, max 100)
        - since, until: ISO 8601 bounds on created_at
        - cursor: continuation token from a previous page
    """

    def get(self, request, uuid, *args, **kwargs):
        if not Wallet.objects.filter(uuid=uuid, owner_id=request.user.id).exists():
            return Response(
                {"error": "Wallet not found."},
                status=status.HTTP_404_NOT_FOUND,
            )

        try:
            limit = min(int(request.query_params.get("limit", 20)), MAX_PAGE_SIZE)
            page = LedgerService.list_transactions(
                uuid,
                limit=limit,
                cursor=request.query_params.get("cursor"),
                transaction_type=request.query_params.get("type"),
                purpose=request.query_params.get("purpose"),
                created_after=_datetime_param(request, "since"),
                created_before=_datetime_param(request, "until"),
            )
        except ValueError as exc:
            return Response(
                {"error": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            {
                "results": TransactionSerializer(page.items, many=True).data,
                "next_cursor": page.next_cursor,
            }
        )


class TransactionDetailView(RetrieveAPIView):
    """GET /wallets/<uuid>/transactions/<id>/ — Retrieve a single ledger entry."""

    serializer_class = TransactionSerializer
    lookup_field = "id"

    def get_queryset(self):
        return Transaction.objects.filter(
            wallet__uuid=self.kwargs["uuid"],
            wallet__owner_id=self.request.user.id,
        )
