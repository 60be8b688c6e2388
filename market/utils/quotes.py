import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


def request_quote(ticker: str) -> dict:
    """
    Fetch the latest price for a ticker from the price-quote service.

    The price only pre-fills an editable field in the client; nothing in the
    ledger or session engine depends on it. Handles HTTP errors, malformed
    payloads and network failures, and returns a structured result dict.

    Returns:
        dict with keys:
            - success (bool): Whether a usable price came back.
            - response (dict): {"ticker", "price"} or error details.
    """
    base_url = getattr(settings, "QUOTE_SERVICE_BASE_URL", "http://localhost:8020")
    timeout = getattr(settings, "QUOTE_SERVICE_TIMEOUT", 10)

    try:
        response = requests.get(
            f"{base_url}/quotes/{ticker}",
            timeout=timeout,
        )
        response.raise_for_status()
        response_data = response.json()
        price = float(response_data["price"])

    except requests.exceptions.Timeout as exc:
        logger.error("Quote service timeout: ticker=%s error=%s", ticker, str(exc))
        return {"success": False, "response": {"error": "timeout", "detail": str(exc)}}

    except requests.exceptions.ConnectionError as exc:
        logger.error("Quote service connection error: ticker=%s error=%s", ticker, str(exc))
        return {
            "success": False,
            "response": {"error": "connection_error", "detail": str(exc)},
        }

    except requests.exceptions.RequestException as exc:
        logger.error("Quote service request error: ticker=%s error=%s", ticker, str(exc))
        return {
            "success": False,
            "response": {"error": "request_error", "detail": str(exc)},
        }

    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Quote service returned no usable price: ticker=%s error=%s", ticker, str(exc))
        return {
            "success": False,
            "response": {"error": "invalid_response", "detail": str(exc)},
        }

    logger.info("Quote fetched: ticker=%s price=%s", ticker, price)
    return {"success": True, "response": {"ticker": ticker, "price": price}}
