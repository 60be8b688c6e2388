from rest_framework import status
from rest_framework.response import Response


class DomainError(Exception):
    """
    Base class for business-rule failures surfaced to API callers.

    Subclasses set a stable machine-readable `code`, the HTTP status the
    views answer with, and optionally the `action` a client should take.
    """

    code = "domain_error"
    status_code = status.HTTP_400_BAD_REQUEST
    action = None
    default_message = "Request could not be completed."

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


def domain_error_response(exc: DomainError, **extra) -> Response:
    body = {"error": exc.message, "code": exc.code}
    if exc.action:
        body["action"] = exc.action
    body.update(exc.context)
    body.update(extra)
    return Response(body, status=exc.status_code)
