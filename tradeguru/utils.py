import uuid


def idempotency_key_from(request):
    """
    Return the Idempotency-Key header as a UUID, or None when absent.

    Raises ValueError for a malformed key.
    """
    raw = request.META.get("HTTP_IDEMPOTENCY_KEY")
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValueError("Idempotency-Key must be a UUID.")
