from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from market.utils import request_quote


class QuoteView(APIView):
    """GET /market/quotes/<ticker> — Latest price, used to pre-fill forms."""

    def get(self, request, ticker, *args, **kwargs):
        result = request_quote(ticker.upper())
        if not result["success"]:
            return Response(result["response"], status=status.HTTP_502_BAD_GATEWAY)
        return Response(result["response"])
