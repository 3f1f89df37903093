"""Payment router: unlock checkout, Stripe webhook and payment history."""

import logging

from fastapi import APIRouter, Depends, Request

from mysterybox import db
from mysterybox.schemas import CheckoutSessionResponse, ErrorResponse, PaymentsListResponse, WebhookAckResponse
from mysterybox.routers.dependencies import get_current_identity
from mysterybox.services.notification_service import enqueue_notification
from mysterybox.services.payment_service import (
    CHECKOUT_COMPLETED,
    CHECKOUT_PAYMENT_FAILED,
    create_checkout_session,
    list_payments,
    parse_webhook_event,
    payment_failed_payload,
    record_paid_checkout,
    webhook_session_object,
)
from mysterybox.services.user_service import display_name, ensure_user, get_user
from mysterybox.utils.audit import _log_admin_notification
from mysterybox.utils.auth import SessionIdentity

logger = logging.getLogger("mysterybox.payments")

router = APIRouter(
    tags=["payments"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 500)},
)


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout(request: Request, identity: SessionIdentity = Depends(get_current_identity)):
    """Start a Stripe Checkout session for the signed-in user."""
    with db.get_conn() as conn:
        cur = conn.cursor()
        ensure_user(cur, identity)
        conn.commit()

    session = create_checkout_session(
        user_id=identity.user_id,
        email=identity.email,
        origin=request.headers.get("origin"),
    )
    logger.info("checkout_session_created user_id=%s session_id=%s", identity.user_id, session.id)
    return CheckoutSessionResponse(session_id=session.id, url=getattr(session, "url", None))


@router.post("/webhook", response_model=WebhookAckResponse)
async def stripe_webhook(request: Request):
    """Stripe webhook receiver. The signature is verified against the raw body."""
    payload = await request.body()
    event = parse_webhook_event(payload, request.headers.get("stripe-signature"))
    event_type = event["type"]
    session = webhook_session_object(event)

    if event_type == CHECKOUT_COMPLETED:
        with db.get_conn() as conn:
            cur = conn.cursor()
            recorded = record_paid_checkout(cur, session)
            if recorded is None:
                conn.commit()
                return WebhookAckResponse(received=True, event_type=event_type)
            user = get_user(cur, recorded["user_id"])
            user_label = display_name(user)
            _log_admin_notification(
                conn,
                "NEW_PAYMENT",
                "New Payment Received",
                f"{user_label} paid ${recorded['amount'] / 100:.2f} and is ready for prize opening",
                recorded["user_id"],
                recorded["claim_id"],
            )
            conn.commit()

        logger.info(
            "payment_recorded payment_id=%s claim_id=%s user_id=%s amount=%s",
            recorded["payment_id"], recorded["claim_id"], recorded["user_id"], recorded["amount"],
        )
        enqueue_notification(
            "NEW_PAYMENT",
            {
                "payment_id": recorded["payment_id"],
                "claim_id": recorded["claim_id"],
                "user_name": user_label,
                "user_email": (user or {}).get("email"),
                "amount": recorded["amount"],
                "currency": recorded["currency"],
            },
        )
        return WebhookAckResponse(
            received=True,
            event_type=event_type,
            recorded=True,
            payment_id=recorded["payment_id"],
            claim_id=recorded["claim_id"],
        )

    if event_type == CHECKOUT_PAYMENT_FAILED:
        failure = payment_failed_payload(session)
        logger.warning(
            "payment_failed session_id=%s user_id=%s error=%s",
            failure["session_id"], failure["user_id"], failure["error"],
        )
        enqueue_notification("PAYMENT_FAILED", failure)
        return WebhookAckResponse(received=True, event_type=event_type)

    logger.info("webhook_ignored event_type=%s", event_type)
    return WebhookAckResponse(received=True, event_type=event_type)


@router.get("/payments", response_model=PaymentsListResponse)
async def my_payments(identity: SessionIdentity = Depends(get_current_identity)):
    with db.get_conn() as conn:
        cur = conn.cursor()
        items = list_payments(cur, identity.user_id)
    return PaymentsListResponse(payments=items)
