"""Payment service layer.

Stripe Checkout for the one-time unlock, webhook verification, and the
payment records a paid checkout produces.
"""

import json
import logging
from typing import Any

import stripe
from fastapi import HTTPException

from mysterybox import config
from mysterybox.services.claim_service import create_pending_claim
from mysterybox.services.common import iso_or_none
from mysterybox.services.user_service import ensure_user_id

logger = logging.getLogger("mysterybox.payments")

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_PAYMENT_FAILED = "checkout.session.async_payment_failed"


def create_checkout_session(*, user_id: str, email: str | None, origin: str | None) -> Any:
    """Create a Stripe Checkout session for the unlock fee."""
    if not config.STRIPE_SECRET_KEY:
        raise HTTPException(status_code=500, detail="PAYMENTS_NOT_CONFIGURED")
    base_url = (origin or config.PUBLIC_BASE_URL).rstrip("/")
    params: dict[str, Any] = {
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": config.UNLOCK_FEE_CURRENCY,
                    "product_data": {
                        "name": config.UNLOCK_PRODUCT_NAME,
                        "description": "Unlock a special prize with this one-time payment",
                    },
                    "unit_amount": config.UNLOCK_FEE_AMOUNT,
                },
                "quantity": 1,
            }
        ],
        "mode": "payment",
        "success_url": f"{base_url}/dashboard?payment_success=true",
        "cancel_url": f"{base_url}/dashboard?payment_cancelled=true",
        "metadata": {"userId": user_id},
    }
    if email:
        params["customer_email"] = email
    try:
        return stripe.checkout.Session.create(api_key=config.STRIPE_SECRET_KEY, **params)
    except stripe.StripeError as exc:
        logger.error("checkout_session_failed user_id=%s error=%s", user_id, exc)
        raise HTTPException(status_code=500, detail="CHECKOUT_FAILED") from exc


def parse_webhook_event(payload: bytes, sig_header: str | None) -> dict[str, Any]:
    """Verify the Stripe-Signature header and decode the event body."""
    if not sig_header or not config.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=400, detail="INVALID_SIGNATURE")
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="INVALID_PAYLOAD") from exc
    try:
        stripe.WebhookSignature.verify_header(
            text,
            sig_header,
            config.STRIPE_WEBHOOK_SECRET,
            config.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("webhook_signature_rejected error=%s", exc)
        raise HTTPException(status_code=400, detail="INVALID_SIGNATURE") from exc
    try:
        event = json.loads(text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="INVALID_PAYLOAD") from exc
    if not isinstance(event, dict) or not event.get("type"):
        raise HTTPException(status_code=400, detail="INVALID_PAYLOAD")
    return event


def webhook_session_object(event: dict[str, Any]) -> dict[str, Any]:
    """The event's ``data.object``; 400 when the signed body has the wrong shape."""
    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="INVALID_PAYLOAD")
    session = data.get("object") or {}
    if not isinstance(session, dict) or not isinstance(session.get("metadata") or {}, dict):
        raise HTTPException(status_code=400, detail="INVALID_PAYLOAD")
    return session


def payment_failed_payload(session: dict[str, Any]) -> dict[str, Any]:
    """Outbound PAYMENT_FAILED payload for an async checkout failure."""
    metadata = session.get("metadata") or {}
    details = session.get("customer_details") if isinstance(session.get("customer_details"), dict) else {}
    last_error = session.get("last_payment_error")
    if isinstance(last_error, dict) and last_error.get("message"):
        error = last_error["message"]
    else:
        error = f"Checkout {session.get('status') or 'session'} with payment status {session.get('payment_status') or 'unknown'}"
    return {
        "session_id": session.get("id"),
        "user_id": metadata.get("userId"),
        "user_name": details.get("name") or metadata.get("userId"),
        "user_email": session.get("customer_email") or details.get("email"),
        "amount": session.get("amount_total"),
        "currency": session.get("currency"),
        "error": error,
    }


def record_paid_checkout(cur, session: dict[str, Any]) -> dict[str, Any] | None:
    """Persist a paid checkout as a payment plus a pending claim.

    Returns None when the session is not paid, carries no user, or was
    already recorded (Stripe redelivers webhooks).
    """
    metadata = session.get("metadata") or {}
    user_id = str(metadata.get("userId") or "").strip()
    if session.get("payment_status") != "paid" or not user_id:
        return None

    ensure_user_id(cur, user_id)
    cur.execute(
        """
        INSERT INTO payments
            (user_id, stripe_session_id, stripe_payment_intent_id, amount, currency, status)
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (stripe_session_id) DO NOTHING
        RETURNING id, created_at
        """,
        (
            user_id,
            session.get("id"),
            session.get("payment_intent"),
            int(session.get("amount_total") or 0),
            session.get("currency") or config.UNLOCK_FEE_CURRENCY,
            session.get("payment_status"),
        ),
    )
    row = cur.fetchone()
    if not row:
        logger.info("webhook_duplicate_session session_id=%s", session.get("id"))
        return None
    payment_id = int(row[0])
    claim_id = create_pending_claim(cur, user_id, payment_id)
    return {
        "payment_id": payment_id,
        "claim_id": claim_id,
        "user_id": user_id,
        "amount": int(session.get("amount_total") or 0),
        "currency": session.get("currency") or config.UNLOCK_FEE_CURRENCY,
        "created_at": iso_or_none(row[1]),
    }


def list_payments(cur, user_id: str) -> list[dict[str, Any]]:
    cur.execute(
        """
        SELECT id, stripe_session_id, stripe_payment_intent_id, amount, currency, status, created_at
          FROM payments
         WHERE user_id=%s
         ORDER BY created_at DESC, id DESC
        """,
        (user_id,),
    )
    return [
        {
            "id": int(pid),
            "stripe_session_id": session_id,
            "stripe_payment_intent_id": intent_id,
            "amount": int(amount),
            "currency": currency,
            "status": status,
            "created_at": iso_or_none(created_at),
        }
        for pid, session_id, intent_id, amount, currency, status, created_at in cur.fetchall() or []
    ]
