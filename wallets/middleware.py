import logging
import time

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 2000


def _truncate(text):
    if len(text) > MAX_LOGGED_BODY:
        return text[:MAX_LOGGED_BODY] + "...<truncated>"
    return text


class RequestResponseLoggingMiddleware:
    """
    Logs every API call with the forwarded principal, the request body,
    the response status and elapsed time.

    Streaming responses (the chat push channel) are never consumed here.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        principal = request.META.get("HTTP_X_USER_ID", "-")
        request_body = ""

        if request.method in ("POST", "PUT", "PATCH"):
            if "multipart/form-data" in request.META.get("CONTENT_TYPE", ""):
                request_body = "<Multipart form data - body not logged>"
            else:
                try:
                    request_body = _truncate(request.body.decode("utf-8"))
                except UnicodeDecodeError:
                    request_body = "<Could not decode body>"

        logger.info(
            "API Request: %s %s principal=%s Body: %s",
            request.method,
            request.get_full_path(),
            principal,
            request_body,
        )

        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000

        if getattr(response, "streaming", False):
            response_content = "<Streaming content>"
        elif response.get("Content-Type", "").startswith(("application/json", "text/")):
            try:
                response_content = _truncate(response.content.decode("utf-8"))
            except UnicodeDecodeError:
                response_content = "<Could not decode content>"
        else:
            response_content = f"<Content-Type: {response.get('Content-Type', '')}>"

        logger.info(
            "API Response: %s %s principal=%s Status: %s (%.1fms) Content: %s",
            request.method,
            request.get_full_path(),
            principal,
            response.status_code,
            elapsed_ms,
            response_content,
        )

        return response
