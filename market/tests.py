from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from market.utils import request_quote


def quote_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} error"
        )
    return response


@override_settings(QUOTE_SERVICE_BASE_URL="http://quotes.test", QUOTE_SERVICE_TIMEOUT=3)
class RequestQuoteTest(TestCase):
    @patch("market.utils.quotes.requests.get")
    def test_success(self, mock_get):
        mock_get.return_value = quote_response({"price": "189.25"})

        result = request_quote("AAPL")

        self.assertTrue(result["success"])
        self.assertEqual(result["response"], {"ticker": "AAPL", "price": 189.25})
        mock_get.assert_called_once_with("http://quotes.test/quotes/AAPL", timeout=3)

    @patch("market.utils.quotes.requests.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout("slow")

        result = request_quote("AAPL")

        self.assertFalse(result["success"])
        self.assertEqual(result["response"]["error"], "timeout")

    @patch("market.utils.quotes.requests.get")
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        self.assertEqual(request_quote("AAPL")["response"]["error"], "connection_error")

    @patch("market.utils.quotes.requests.get")
    def test_http_error(self, mock_get):
        mock_get.return_value = quote_response({}, status_code=503)
        self.assertEqual(request_quote("AAPL")["response"]["error"], "request_error")

    @patch("market.utils.quotes.requests.get")
    def test_missing_price(self, mock_get):
        mock_get.return_value = quote_response({"ticker": "AAPL"})
        self.assertEqual(request_quote("AAPL")["response"]["error"], "invalid_response")


class QuoteAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.client.credentials(HTTP_X_USER_ID="user-1")

    @patch("market.views.request_quote")
    def test_quote(self, mock_quote):
        mock_quote.return_value = {
            "success": True,
            "response": {"ticker": "MSFT", "price": 410.5},
        }

        response = self.client.get("/market/quotes/msft")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["price"], 410.5)
        mock_quote.assert_called_once_with("MSFT")

    @patch("market.views.request_quote")
    def test_quote_service_down(self, mock_quote):
        mock_quote.return_value = {
            "success": False,
            "response": {"error": "timeout", "detail": "slow"},
        }

        response = self.client.get("/market/quotes/MSFT")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.data["error"], "timeout")
