"""Admin prize-claim router.

Listing, opening, manual/direct openings and delivery of prize claims.
Mutations record an admin notification in the same transaction and enqueue
the outbound alert only after commit.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Depends, Request, Response

from mysterybox import db
from mysterybox.schemas import (
    ClaimActionRequest,
    DirectBoxOpeningRequest,
    DirectBoxOpeningResponse,
    ErrorResponse,
    ManualOpenRequest,
    ManualOpenResponse,
    OpenedBoxesResponse,
    PendingUsersResponse,
    PrizeClaimActionResponse,
    PrizeClaimsListResponse,
)
from mysterybox.routers.dependencies import require_admin
from mysterybox.services.claim_service import (
    create_direct_box_opening,
    create_manual_claim,
    list_claims,
    list_pending_users,
    mark_delivered,
    open_claim,
    opened_boxes,
)
from mysterybox.services.common import (
    now_utc,
    validate_idempotency_key,
    hash_request_body,
    idempotency_scope,
    idempotency_start,
    idempotency_finish,
)
from mysterybox.services.notification_service import enqueue_notification
from mysterybox.utils.audit import _log_admin_notification
from mysterybox.utils.auth import SessionIdentity
from mysterybox.utils.parsers import _normalize_text, _parse_box_number
from mysterybox.utils.sql_builders import _apply_job_timeouts

logger = logging.getLogger("mysterybox.claims")

router = APIRouter(
    prefix="/admin",
    tags=["admin-claims"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409)},
)


def _begin_idempotent(cur, request: Request, admin: SessionIdentity, endpoint: str, payload: dict) -> tuple[str, str, dict]:
    key = validate_idempotency_key(request.headers.get("x-idempotency-key"))
    scope = idempotency_scope(admin.user_id)
    idem = idempotency_start(cur, key=key, scope=scope, endpoint=endpoint, request_hash=hash_request_body(payload))
    if idem["status"] == "in_progress":
        raise HTTPException(status_code=409, detail="IDEMPOTENCY_IN_PROGRESS")
    return key, scope, idem


def _user_label(claim: dict[str, Any]) -> str:
    return claim.get("user_name") or claim.get("user_email") or claim.get("user_id") or "Unknown"


def _admin_label(admin: SessionIdentity) -> str:
    return admin.name or admin.email or "Admin"


@router.get("/prize-claims")
async def list_prize_claims(
    filter: str = "all",
    format: str | None = None,
    _admin: SessionIdentity = Depends(require_admin),
):
    """List claims by status, or the OPENED claims keyed by box number."""
    with db.get_conn() as conn:
        cur = conn.cursor()
        _apply_job_timeouts(cur)
        if (format or "").lower() == "boxes":
            boxes, total_opened = opened_boxes(cur)
            return OpenedBoxesResponse(success=True, opened_boxes=boxes, total_opened=total_opened)
        claims = list_claims(cur, filter)
    return PrizeClaimsListResponse(filter=filter.lower(), count=len(claims), prize_claims=claims)


@router.post("/open-prize", response_model=PrizeClaimActionResponse)
async def open_prize(
    body: ClaimActionRequest,
    request: Request,
    response: Response,
    admin: SessionIdentity = Depends(require_admin),
):
    """Open a pending claim with a weighted-random prize."""
    endpoint = "/admin/open-prize"
    now = now_utc()
    with db.get_conn() as conn:
        cur = conn.cursor()
        _apply_job_timeouts(cur)

        key, scope, idem = _begin_idempotent(cur, request, admin, endpoint, body.model_dump())
        if idem["status"] == "replayed":
            response.headers["Idempotency-Status"] = "replayed"
            return PrizeClaimActionResponse(**idem["response_body"])

        claim, prize_type = open_claim(cur, body.claimId, admin.user_id, now)

        _log_admin_notification(
            conn,
            "PRIZE_OPENED",
            "Prize Opened",
            f"Prize opened for {_user_label(claim)}",
            claim["user_id"],
            claim["id"],
        )
        response_body = {"prize_claim": claim, "message": "Prize opened successfully"}
        idempotency_finish(cur, key=key, scope=scope, endpoint=endpoint, response_status=200, response_body=response_body)
        conn.commit()

    logger.info(
        "prize_opened claim_id=%s prize=%s admin=%s",
        claim["id"], prize_type["name"], admin.user_id,
    )
    enqueue_notification(
        "PRIZE_OPENED",
        {
            "claim_id": claim["id"],
            "user_name": claim["user_name"],
            "user_email": claim["user_email"],
            "prize_name": prize_type["name"],
            "prize_value": prize_type["value"],
            "admin_name": _admin_label(admin),
        },
    )
    response.headers["Idempotency-Status"] = "recorded"
    return PrizeClaimActionResponse(**response_body)


@router.post("/manual-open-prize", response_model=ManualOpenResponse)
async def manual_open_prize(
    body: ManualOpenRequest,
    request: Request,
    response: Response,
    admin: SessionIdentity = Depends(require_admin),
):
    """Open a prize for a user (by email) or a payment, by box number, name or at random."""
    endpoint = "/admin/manual-open-prize"
    box_number = _parse_box_number(body.boxNumber)
    user_email = _normalize_text(body.userEmail)
    prize_name = _normalize_text(body.prizeName)
    if body.paymentId is None and not user_email:
        raise HTTPException(status_code=400, detail="USER_EMAIL_OR_PAYMENT_REQUIRED")

    now = now_utc()
    with db.get_conn() as conn:
        cur = conn.cursor()
        _apply_job_timeouts(cur)

        key, scope, idem = _begin_idempotent(cur, request, admin, endpoint, body.model_dump())
        if idem["status"] == "replayed":
            response.headers["Idempotency-Status"] = "replayed"
            return ManualOpenResponse(**idem["response_body"])

        result = create_manual_claim(
            cur,
            admin=admin,
            now=now,
            user_email=user_email,
            payment_id=body.paymentId,
            prize_name=prize_name,
            box_number=box_number,
        )
        claim = result["claim"]
        prize_type = result["prize_type"]
        user_label = result["user"].get("name") or result["user"].get("email") or result["user"]["id"]
        box_suffix = f" (Box {box_number})" if box_number is not None else ""

        _log_admin_notification(
            conn,
            "MANUAL_PRIZE_OPENED",
            "Manual Prize Opened",
            f'Admin {admin.email or admin.user_id} manually opened "{prize_type["name"]}" for {user_label}{box_suffix}',
            claim["user_id"],
            claim["id"],
        )
        response_body = {
            "success": True,
            "message": f'Prize "{prize_type["name"]}" successfully opened for {user_label}{box_suffix}',
            "prize_claim": claim,
        }
        idempotency_finish(cur, key=key, scope=scope, endpoint=endpoint, response_status=200, response_body=response_body)
        conn.commit()

    logger.info(
        "manual_prize_opened claim_id=%s prize=%s mode=%s box=%s payment_id=%s admin=%s",
        claim["id"], prize_type["name"], result["mode"], box_number, body.paymentId, admin.user_id,
    )
    enqueue_notification(
        "MANUAL_PRIZE_OPENED",
        {
            "claim_id": claim["id"],
            "user_name": user_label,
            "prize_name": prize_type["name"],
            "prize_value": prize_type["value"],
            "box_number": box_number,
            "admin_name": _admin_label(admin),
        },
    )
    response.headers["Idempotency-Status"] = "recorded"
    return ManualOpenResponse(**response_body)


@router.post("/direct-box-opening", response_model=DirectBoxOpeningResponse)
async def direct_box_opening(
    body: DirectBoxOpeningRequest,
    request: Request,
    response: Response,
    admin: SessionIdentity = Depends(require_admin),
):
    """Record a box opened by the admin with no end user attached."""
    endpoint = "/admin/direct-box-opening"
    box_number = _parse_box_number(body.boxNumber)
    prize_name = _normalize_text(body.prizeName)
    if box_number is None or not prize_name:
        raise HTTPException(status_code=400, detail="BOX_NUMBER_AND_PRIZE_REQUIRED")

    now = now_utc()
    with db.get_conn() as conn:
        cur = conn.cursor()
        _apply_job_timeouts(cur)

        key, scope, idem = _begin_idempotent(cur, request, admin, endpoint, body.model_dump())
        if idem["status"] == "replayed":
            response.headers["Idempotency-Status"] = "replayed"
            return DirectBoxOpeningResponse(**idem["response_body"])

        claim, prize_type = create_direct_box_opening(
            cur,
            admin=admin,
            now=now,
            box_number=box_number,
            prize_name=prize_name,
            prize_value=body.prizeValue,
            prize_glow=_normalize_text(body.prizeGlow),
        )

        _log_admin_notification(
            conn,
            "MANUAL_PRIZE_OPENED",
            "Direct Box Opening",
            f'Admin {admin.email or admin.user_id} directly opened box #{box_number} containing "{prize_name}" (No user assigned)',
            admin.user_id,
            claim["id"],
        )
        response_body = {
            "success": True,
            "message": f"Direct box opening tracked: Box #{box_number} - {prize_name}",
            "direct_opening": claim,
        }
        idempotency_finish(cur, key=key, scope=scope, endpoint=endpoint, response_status=200, response_body=response_body)
        conn.commit()

    logger.info(
        "direct_box_opened claim_id=%s box=%s prize=%s admin=%s",
        claim["id"], box_number, prize_name, admin.user_id,
    )
    enqueue_notification(
        "DIRECT_BOX_OPENING",
        {
            "claim_id": claim["id"],
            "box_number": box_number,
            "prize_name": prize_type["name"],
            "prize_value": prize_type["value"],
            "admin_name": _admin_label(admin),
        },
    )
    response.headers["Idempotency-Status"] = "recorded"
    return DirectBoxOpeningResponse(**response_body)


@router.post("/mark-delivered", response_model=PrizeClaimActionResponse)
async def mark_prize_delivered(
    body: ClaimActionRequest,
    request: Request,
    response: Response,
    admin: SessionIdentity = Depends(require_admin),
):
    endpoint = "/admin/mark-delivered"
    now = now_utc()
    with db.get_conn() as conn:
        cur = conn.cursor()
        _apply_job_timeouts(cur)

        key, scope, idem = _begin_idempotent(cur, request, admin, endpoint, body.model_dump())
        if idem["status"] == "replayed":
            response.headers["Idempotency-Status"] = "replayed"
            return PrizeClaimActionResponse(**idem["response_body"])

        claim = mark_delivered(cur, body.claimId, now)

        _log_admin_notification(
            conn,
            "PRIZE_DELIVERED",
            "Prize Delivered",
            f"Prize delivered to {_user_label(claim)}",
            claim["user_id"],
            claim["id"],
        )
        response_body = {"prize_claim": claim, "message": "Prize marked as delivered successfully"}
        idempotency_finish(cur, key=key, scope=scope, endpoint=endpoint, response_status=200, response_body=response_body)
        conn.commit()

    logger.info("prize_delivered claim_id=%s admin=%s", claim["id"], admin.user_id)
    enqueue_notification(
        "PRIZE_DELIVERED",
        {
            "claim_id": claim["id"],
            "user_name": claim["user_name"],
            "user_email": claim["user_email"],
            "prize_name": claim["prize_name"],
            "admin_name": _admin_label(admin),
        },
    )
    response.headers["Idempotency-Status"] = "recorded"
    return PrizeClaimActionResponse(**response_body)


@router.get("/pending-users", response_model=PendingUsersResponse)
async def pending_users(_admin: SessionIdentity = Depends(require_admin)):
    with db.get_conn() as conn:
        cur = conn.cursor()
        _apply_job_timeouts(cur)
        items = list_pending_users(cur)
    return PendingUsersResponse(success=True, pending_users=items, count=len(items))
