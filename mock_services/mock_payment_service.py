"""
mock_payment_service.py — Mock Implementation of the Payment Provider (REST API)

This module provides a simulated Stripe-style payment provider for local runs and
client tests. It exposes a simple FastAPI application that mimics the
payment-intent lifecycle used by the checkout service.

Simulation Scenarios:
    • Successful payment (intent moves to 'succeeded')
    • Declined payment (HTTP 402, intent stays 'requires_payment_method')
    • Timeout simulation (simulates client read timeout)

Endpoints:
    POST /v1/payment_intents               — Creates an intent.
    GET  /v1/payment_intents/{id}          — Retrieves an intent.
    POST /v1/payment_intents/{id}/confirm  — Confirms an intent with a payment token.

Port:
    Default: 8001 (HTTP)
"""

from typing import Dict, Optional
import logging
import time
import uuid

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

app = FastAPI(title="Mock Payment Provider")
logging.basicConfig(level=logging.INFO)

# In-memory intent registry, keyed by intent ID
INTENTS: Dict[str, dict] = {}


class PaymentIntentRequest(BaseModel):
    """
    Represents a payment intent creation payload.

    Attributes:
        amount (int): Amount in the smallest currency unit (e.g., cents).
        currency (str): ISO 4217 currency code, lower-case (e.g., 'usd').
        metadata (dict): Reference data supplied by the merchant.
    """
    amount: int = Field(..., gt=0)
    currency: str
    automatic_payment_methods: dict = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(default_factory=dict)


class ConfirmRequest(BaseModel):
    paymentToken: str


def _require_key(authorization: Optional[str]):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail={"errorCode": "unauthorized", "message": "Missing API key."})


def _get_intent(intent_id: str) -> dict:
    intent = INTENTS.get(intent_id)
    if intent is None:
        raise HTTPException(status_code=404, detail={"errorCode": "resource_missing", "message": "No such intent."})
    return intent


@app.post("/v1/payment_intents")
def create_payment_intent(request: PaymentIntentRequest, authorization: Optional[str] = Header(None)):
    """
    Creates a payment intent awaiting a payment method.

    Returns:
        dict: The intent with `id`, `client_secret`, `status`, `amount`, `currency` and `metadata`.
    """
    _require_key(authorization)
    intent_id = f"pi_{uuid.uuid4().hex[:24]}"
    intent = {
        "id": intent_id,
        "client_secret": f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
        "status": "requires_payment_method",
        "amount": request.amount,
        "currency": request.currency,
        "metadata": request.metadata,
        "created": int(time.time()),
    }
    INTENTS[intent_id] = intent
    logging.info(f"[PS] Payment Intent {intent_id} über {request.amount} {request.currency} erstellt.")
    return intent


@app.get("/v1/payment_intents/{intent_id}")
def retrieve_payment_intent(intent_id: str, authorization: Optional[str] = Header(None)):
    _require_key(authorization)
    return _get_intent(intent_id)


@app.post("/v1/payment_intents/{intent_id}/confirm")
def confirm_payment_intent(intent_id: str, request: ConfirmRequest, authorization: Optional[str] = Header(None)):
    """
    Confirms an intent with a payment token.

    This endpoint simulates different payment outcomes based on the provided `paymentToken`:
        - Starts with "tok_decline_" → Payment declined (HTTP 402)
        - Starts with "tok_timeout_" → Simulated timeout (long-running process)
        - Any other token → Intent succeeds

    Raises:
        HTTPException(402): If the payment is declined.
        HTTPException(404): If the intent does not exist.
    """
    _require_key(authorization)
    intent = _get_intent(intent_id)

    if request.paymentToken.startswith("tok_decline_"):
        logging.warning(f"[PS] Zahlung für {intent_id} abgelehnt.")
        raise HTTPException(
            status_code=402,
            detail={"errorCode": "payment_declined", "message": "Karte abgelehnt."}
        )

    if request.paymentToken.startswith("tok_timeout_"):
        logging.info(f"[PS] Simuliere Timeout für {intent_id}...")
        time.sleep(10)

    intent["status"] = "succeeded"
    logging.info(f"[PS] Zahlung für {intent_id} erfolgreich.")
    return intent


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
