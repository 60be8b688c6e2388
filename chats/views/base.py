import logging

from django.core.exceptions import ObjectDoesNotExist
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from tradeguru.exceptions import DomainError, domain_error_response

logger = logging.getLogger(__name__)


class ChatAPIView(APIView):
    """
    Maps domain failures to HTTP answers:

    - DomainError subclasses: their own status, code and client action
    - unknown session / subscription / profile: 404
    - invalid arguments (ValueError): 400
    """

    def handle_exception(self, exc):
        if isinstance(exc, DomainError):
            logger.info(
                "Request refused: %s %s code=%s",
                self.request.method,
                self.request.path,
                exc.code,
            )
            return domain_error_response(exc)
        if isinstance(exc, ObjectDoesNotExist):
            return Response({"error": "Not found."}, status=status.HTTP_404_NOT_FOUND)
        if isinstance(exc, ValueError):
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return super().handle_exception(exc)
