import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from tradeguru.exceptions import DomainError, domain_error_response
from tradeguru.utils import idempotency_key_from
from wallets.models import Wallet
from wallets.serializers import (
    RechargeSerializer,
    TransactionSerializer,
    WalletSerializer,
)
from wallets.services import LedgerService

logger = logging.getLogger(__name__)


class RechargeView(APIView):
    """
    POST /wallets/<uuid>/recharge — Simulated top-up of the caller's wallet.

    Request body: {"amount": <positive integer>}
    Header: Idempotency-Key (optional UUID) makes retries safe.
    """

    def post(self, request, uuid, *args, **kwargs):
        serializer = RechargeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if not Wallet.objects.filter(uuid=uuid, owner_id=request.user.id).exists():
            return Response(
                {"error": "Wallet not found."},
                status=status.HTTP_404_NOT_FOUND,
            )

        try:
            idempotency_key = idempotency_key_from(request)
            tx = LedgerService.recharge(
                wallet_uuid=uuid,
                amount=serializer.validated_data["amount"],
                idempotency_key=idempotency_key,
            )
        except DomainError as exc:
            return domain_error_response(exc)
        except ValueError as exc:
            return Response(
                {"error": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        tx.wallet.refresh_from_db()
        return Response(
            {
                "wallet": WalletSerializer(tx.wallet).data,
                "transaction": TransactionSerializer(tx).data,
            },
            status=status.HTTP_200_OK,
        )
