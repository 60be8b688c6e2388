import logging

from rest_framework import status
from rest_framework.generics import RetrieveAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from wallets.models import Wallet
from wallets.serializers import WalletSerializer
from wallets.services import LedgerService

logger = logging.getLogger(__name__)


class CreateWalletView(APIView):
    """POST /wallets/ — Get or create the caller's wallet."""

    def post(self, request, *args, **kwargs):
        wallet, created = LedgerService.get_or_create_wallet(request.user.id)
        return Response(
            WalletSerializer(wallet).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class RetrieveWalletView(RetrieveAPIView):
    """GET /wallets/<uuid>/ — Retrieve the caller's wallet."""

    serializer_class = WalletSerializer
    lookup_field = "uuid"

    def get_queryset(self):
        return Wallet.objects.filter(owner_id=self.request.user.id)
