"""
This module provides the communication client for the external payment provider
used by the checkout service.

The provider exposes a Stripe-style payment-intent REST API:
- POST /v1/payment_intents          creates an intent for the cart total
- GET  /v1/payment_intents/{id}     retrieves an intent and its status
The client encapsulates protocol logic, error handling and connection management.
"""

import logging
import math
import os
from typing import Optional

import httpx

from .errors import PaymentNotConfigured

# Service-Adressen (normalerweise aus Env Vars)
PAYMENT_SERVICE_URL = os.environ.get("PAYMENT_SERVICE_URL", "http://payment_service:8001")
PAYMENT_API_KEY = os.environ.get("PAYMENT_API_KEY", "")
PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd").lower()

log = logging.getLogger(__name__)


def to_cents(amount: float) -> int:
    """Converts a major-unit amount (149.99) to cents (14999). Invalid or negative amounts give 0."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(round(value * 100))


class PaymentClient:
    """
    Client for the Payment Provider (REST API).
    Handles creation and retrieval of payment intents and error responses.
    """
    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.Client] = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            api_key (str, optional): Secret key for the provider. Defaults to PAYMENT_API_KEY.
            client (httpx.Client, optional): Preconfigured client, e.g. for tests.
        Raises:
            PaymentNotConfigured: If no API key is available.
        """
        self.api_key = api_key if api_key is not None else PAYMENT_API_KEY
        if not self.api_key:
            raise PaymentNotConfigured("PAYMENT_API_KEY")

        if client is None:
            timeout_config = httpx.Timeout(5.0, read=8.0)
            client = httpx.Client(base_url=PAYMENT_SERVICE_URL, timeout=timeout_config)
        self.client = client
        self.client.headers["Authorization"] = f"Bearer {self.api_key}"

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def _request(self, method: str, path: str, ref: str, **kwargs) -> dict:
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()  # Löst HTTPStatusError bei 4xx/5xx aus
            return response.json()
        except httpx.TimeoutException:
            log.error(f"[Payment: {ref}] Payment Provider Timeout. Status unbekannt.")
            raise
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                log.warning(f"[Payment: {ref}] Payment Intent nicht gefunden.")
            else:
                log.error(f"[Payment: {ref}] HTTP-Fehler beim Payment Provider: {e}")
            raise  # Fehler wird in der API behandelt

    def create_payment_intent(self, amount_cents: int, currency: str = PAYMENT_CURRENCY,
                              metadata: Optional[dict] = None) -> dict:
        """
        Creates a new payment intent for the given amount.
        Args:
            amount_cents (int): Amount in cents.
            currency (str): ISO currency code, lower-case (e.g. 'usd').
            metadata (dict, optional): Free-form reference data (user and cart IDs).
        Returns:
            dict: The intent, including 'id', 'client_secret' and 'status'.
        Raises:
            httpx.TimeoutException: If the provider does not respond within the timeout.
            httpx.HTTPStatusError: If the provider returns an error status (4xx or 5xx).
        """
        payload = {
            "amount": amount_cents,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata or {},
        }
        ref = (metadata or {}).get("userId", "new")
        return self._request("POST", "/v1/payment_intents", ref, json=payload)

    def retrieve_payment_intent(self, intent_id: str) -> dict:
        """
        Retrieves a payment intent.
        Args:
            intent_id (str): ID returned by `create_payment_intent`.
        Returns:
            dict: The intent; 'status' is 'succeeded' once the payment is complete.
        Raises:
            httpx.TimeoutException / httpx.HTTPStatusError: See `create_payment_intent`.
        """
        return self._request("GET", f"/v1/payment_intents/{intent_id}", intent_id)
