"""Prize claim service layer.

Claim lifecycle: PENDING_ADMIN_OPEN -> OPENED -> DELIVERED, with CANCELLED as
an out-of-band terminal state. Guards that check for an existing open claim
run as separate statements before the write; two concurrent admin requests
for the same user or payment can both pass them.
"""

import random
from datetime import datetime
from typing import Any

from fastapi import HTTPException

from mysterybox.constants import ClaimStatus
from mysterybox.services.allocation import (
    choose_prize,
    get_or_create_prize_type,
    pick_weighted_prize,
    validate_box_number,
)
from mysterybox.services.common import iso_or_none
from mysterybox.services.user_service import ensure_user, get_user_by_email
from mysterybox.utils.auth import SessionIdentity
from mysterybox.utils.sql_builders import _build_claim_filter_sql


CLAIM_VIEW_SELECT = """
    SELECT pc.id,
           pc.status,
           pc.user_id,
           u.name,
           u.email,
           pc.payment_id,
           p.amount,
           p.currency,
           pc.prize_type_id,
           pt.name,
           pt.value,
           pt.glow,
           pc.box_number,
           pc.notes,
           pc.opened_by,
           pc.opened_at,
           pc.delivered_at,
           pc.created_at
      FROM prize_claims pc
      JOIN users u ON u.id = pc.user_id
      LEFT JOIN payments p ON p.id = pc.payment_id
      LEFT JOIN prize_types pt ON pt.id = pc.prize_type_id
"""


def _claim_row_to_dict(row) -> dict[str, Any]:
    (
        claim_id, status, user_id, user_name, user_email,
        payment_id, payment_amount, payment_currency,
        prize_type_id, prize_name, prize_value, prize_glow,
        box_number, notes, opened_by, opened_at, delivered_at, created_at,
    ) = row
    return {
        "id": int(claim_id),
        "status": status,
        "user_id": user_id,
        "user_name": user_name,
        "user_email": user_email,
        "payment_id": int(payment_id) if payment_id is not None else None,
        "payment_amount": int(payment_amount) if payment_amount is not None else None,
        "payment_currency": payment_currency,
        "prize_type_id": int(prize_type_id) if prize_type_id is not None else None,
        "prize_name": prize_name,
        "prize_value": int(prize_value) if prize_value is not None else None,
        "prize_glow": prize_glow,
        "box_number": box_number,
        "notes": notes,
        "opened_by": opened_by,
        "opened_at": iso_or_none(opened_at),
        "delivered_at": iso_or_none(delivered_at),
        "created_at": iso_or_none(created_at),
    }


def get_claim_view(cur, claim_id: int) -> dict[str, Any] | None:
    cur.execute(CLAIM_VIEW_SELECT + " WHERE pc.id=%s", (claim_id,))
    row = cur.fetchone()
    return _claim_row_to_dict(row) if row else None


def _lock_claim(cur, claim_id: int) -> tuple[str, str]:
    """Return (status, user_id) of the claim, row-locked for this transaction."""
    cur.execute(
        "SELECT status, user_id FROM prize_claims WHERE id=%s FOR UPDATE",
        (claim_id,),
    )
    row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="CLAIM_NOT_FOUND")
    return row[0], row[1]


# =============================================================================
# Transition guards
# =============================================================================

def validate_open_transition(current_status: str) -> None:
    """Only a pending claim can be opened."""
    if current_status != ClaimStatus.PENDING_ADMIN_OPEN.value:
        raise HTTPException(status_code=400, detail="CLAIM_NOT_PENDING")


def validate_delivery_transition(current_status: str) -> None:
    """Only an opened claim can be delivered."""
    if current_status != ClaimStatus.OPENED.value:
        raise HTTPException(status_code=400, detail="CLAIM_NOT_OPENED")


def ensure_box_available(cur, box_number: int) -> None:
    cur.execute(
        """
        SELECT 1
          FROM prize_claims
         WHERE box_number=%s
           AND status IN ('OPENED', 'DELIVERED')
         LIMIT 1
        """,
        (box_number,),
    )
    if cur.fetchone():
        raise HTTPException(status_code=400, detail="BOX_ALREADY_OPENED")


# =============================================================================
# Lifecycle operations
# =============================================================================

def create_pending_claim(cur, user_id: str, payment_id: int) -> int:
    """Webhook path: a confirmed payment grants one pending claim."""
    cur.execute(
        """
        INSERT INTO prize_claims (user_id, payment_id, status)
        VALUES (%s, %s, 'PENDING_ADMIN_OPEN')
        RETURNING id
        """,
        (user_id, payment_id),
    )
    return int(cur.fetchone()[0])


def open_claim(
    cur,
    claim_id: int,
    opener_id: str,
    now: datetime,
    rng: random.Random | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Open a pending claim with a weighted-random prize.

    Returns (claim_view, prize_type).
    """
    status, _user_id = _lock_claim(cur, claim_id)
    validate_open_transition(status)

    item = pick_weighted_prize(rng=rng)
    prize_type = get_or_create_prize_type(cur, item["name"], value=item["value"], glow=item["glow"])

    cur.execute(
        """
        UPDATE prize_claims
           SET status='OPENED',
               prize_type_id=%s,
               opened_by=%s,
               opened_at=%s
         WHERE id=%s
        """,
        (prize_type["id"], opener_id, now, claim_id),
    )
    return get_claim_view(cur, claim_id), prize_type


def mark_delivered(cur, claim_id: int, now: datetime) -> dict[str, Any]:
    status, _user_id = _lock_claim(cur, claim_id)
    validate_delivery_transition(status)
    cur.execute(
        "UPDATE prize_claims SET status='DELIVERED', delivered_at=%s WHERE id=%s",
        (now, claim_id),
    )
    return get_claim_view(cur, claim_id)


def _resolve_payment(cur, payment_id: int) -> dict[str, Any]:
    cur.execute(
        """
        SELECT p.id, p.user_id, p.amount, p.currency, u.email, u.name
          FROM payments p
          JOIN users u ON u.id = p.user_id
         WHERE p.id=%s
        """,
        (payment_id,),
    )
    row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="PAYMENT_NOT_FOUND")
    return {
        "id": int(row[0]),
        "user_id": row[1],
        "amount": int(row[2]),
        "currency": row[3],
        "user": {"id": row[1], "email": row[4], "name": row[5]},
    }


def _manual_notes(admin: SessionIdentity, box_number: int | None) -> str:
    who = admin.email or admin.user_id
    suffix = f" (Box {box_number})" if box_number is not None else ""
    return f"Manually opened by admin {who}{suffix}"


def create_manual_claim(
    cur,
    *,
    admin: SessionIdentity,
    now: datetime,
    user_email: str | None = None,
    payment_id: int | None = None,
    prize_name: str | None = None,
    box_number: int | None = None,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Admin-initiated opening for a user (by email) or for a payment's owner.

    Returns {"claim", "prize_type", "user", "mode"}.
    """
    if payment_id is None and not user_email:
        raise HTTPException(status_code=400, detail="USER_EMAIL_OR_PAYMENT_REQUIRED")

    payment = None
    if payment_id is not None:
        payment = _resolve_payment(cur, payment_id)
        user = payment["user"]
    else:
        user = get_user_by_email(cur, user_email)

    if box_number is not None:
        validate_box_number(box_number)
        ensure_box_available(cur, box_number)

    pending_claim_id = None
    if payment is not None:
        cur.execute(
            "SELECT id, status FROM prize_claims WHERE payment_id=%s ORDER BY id",
            (payment["id"],),
        )
        existing = cur.fetchall() or []
        # A payment grants at most one claim; only a pending one may still be opened.
        if any(status != ClaimStatus.PENDING_ADMIN_OPEN.value for _cid, status in existing):
            raise HTTPException(status_code=400, detail="PAYMENT_ALREADY_OPENED")
        pending = [cid for cid, status in existing if status == ClaimStatus.PENDING_ADMIN_OPEN.value]
        pending_claim_id = int(pending[0]) if pending else None
    else:
        cur.execute(
            "SELECT 1 FROM prize_claims WHERE user_id=%s AND status='OPENED' AND NOT direct_opening LIMIT 1",
            (user["id"],),
        )
        if cur.fetchone():
            raise HTTPException(status_code=400, detail="USER_ALREADY_HAS_OPENED_PRIZE")

    choice = choose_prize(prize_name=prize_name, box_number=box_number, rng=rng)
    description = f"Manual prize: {choice['name']}"
    if box_number is not None:
        description += f" (Box {box_number})"
    prize_type = get_or_create_prize_type(
        cur, choice["name"], value=choice["value"], glow=choice["glow"], description=description,
    )
    notes = _manual_notes(admin, box_number)

    if pending_claim_id is not None:
        cur.execute(
            """
            UPDATE prize_claims
               SET status='OPENED',
                   prize_type_id=%s,
                   box_number=%s,
                   notes=%s,
                   opened_by=%s,
                   opened_at=%s
             WHERE id=%s
            """,
            (prize_type["id"], box_number, notes, admin.user_id, now, pending_claim_id),
        )
        claim_id = pending_claim_id
    else:
        cur.execute(
            """
            INSERT INTO prize_claims
                (user_id, payment_id, prize_type_id, status, box_number, notes, opened_by, opened_at)
            VALUES (%s, %s, %s, 'OPENED', %s, %s, %s, %s)
            RETURNING id
            """,
            (
                user["id"],
                payment["id"] if payment else None,
                prize_type["id"],
                box_number,
                notes,
                admin.user_id,
                now,
            ),
        )
        claim_id = int(cur.fetchone()[0])

    return {
        "claim": get_claim_view(cur, claim_id),
        "prize_type": prize_type,
        "user": user,
        "mode": choice["mode"],
    }


def create_direct_box_opening(
    cur,
    *,
    admin: SessionIdentity,
    now: datetime,
    box_number: int | None,
    prize_name: str | None,
    prize_value: int | None = None,
    prize_glow: str | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Record a box the admin opened without any end user attached.

    The claim is owned by the admin's own user row. Returns (claim_view, prize_type).
    """
    if box_number is None or not prize_name:
        raise HTTPException(status_code=400, detail="BOX_NUMBER_AND_PRIZE_REQUIRED")
    validate_box_number(box_number)
    ensure_box_available(cur, box_number)

    owner_id = ensure_user(cur, admin)
    prize_type = get_or_create_prize_type(
        cur,
        prize_name,
        value=prize_value,
        glow=prize_glow,
        description=f"Direct admin opening: {prize_name}",
    )
    who = admin.email or admin.user_id
    notes = f"Direct admin opening by {who} - Box #{box_number} - {prize_name} (No user assigned)"
    cur.execute(
        """
        INSERT INTO prize_claims
            (user_id, payment_id, prize_type_id, status, box_number, notes, opened_by, opened_at, direct_opening)
        VALUES (%s, NULL, %s, 'OPENED', %s, %s, %s, %s, TRUE)
        RETURNING id
        """,
        (owner_id, prize_type["id"], box_number, notes, admin.user_id, now),
    )
    claim_id = int(cur.fetchone()[0])
    return get_claim_view(cur, claim_id), prize_type


# =============================================================================
# Listings
# =============================================================================

def list_claims(cur, filter_name: str | None) -> list[dict[str, Any]]:
    where_sql, params = _build_claim_filter_sql(filter_name)
    cur.execute(
        CLAIM_VIEW_SELECT + f" WHERE {where_sql} ORDER BY pc.created_at DESC, pc.id DESC",
        params,
    )
    return [_claim_row_to_dict(row) for row in cur.fetchall() or []]


def opened_boxes(cur) -> tuple[dict[int, dict[str, Any]], int]:
    """OPENED claims keyed by box number for the board overlay.

    Returns (boxes, total_opened). Claims with a box number are placed first;
    claims opened without one take their 1-based position in the result set
    when that key is still free, which need not match any box a user saw.
    total_opened counts claims, so it can exceed len(boxes).
    """
    cur.execute(
        """
        SELECT pc.box_number, pt.name, pt.value, pt.glow
          FROM prize_claims pc
          JOIN prize_types pt ON pt.id = pc.prize_type_id
         WHERE pc.status='OPENED'
         ORDER BY pc.opened_at ASC, pc.id ASC
        """
    )
    rows = cur.fetchall() or []
    boxes: dict[int, dict[str, Any]] = {}
    for box_number, name, value, glow in rows:
        if box_number is not None:
            boxes.setdefault(int(box_number), {"prize": name, "value": int(value), "opened": True, "glow": glow})
    for index, (box_number, name, value, glow) in enumerate(rows):
        if box_number is None:
            boxes.setdefault(index + 1, {"prize": name, "value": int(value), "opened": True, "glow": glow})
    return boxes, len(rows)


def list_pending_users(cur) -> list[dict[str, Any]]:
    """Users with a pending claim or a paid payment that has no claim yet."""
    cur.execute(
        """
        SELECT u.id, u.name, u.email, p.amount, p.currency, pc.payment_id, pc.id, pc.created_at
          FROM prize_claims pc
          JOIN users u ON u.id = pc.user_id
          LEFT JOIN payments p ON p.id = pc.payment_id
         WHERE pc.status='PENDING_ADMIN_OPEN'
        UNION ALL
        SELECT u.id, u.name, u.email, p.amount, p.currency, p.id, NULL, p.created_at
          FROM payments p
          JOIN users u ON u.id = p.user_id
         WHERE p.status='paid'
           AND NOT EXISTS (SELECT 1 FROM prize_claims pc WHERE pc.payment_id = p.id)
         ORDER BY 8 ASC
        """
    )
    items = []
    for user_id, name, email, amount, currency, payment_id, claim_id, created_at in cur.fetchall() or []:
        items.append(
            {
                "id": user_id,
                "name": name,
                "email": email,
                "payment_amount": int(amount or 0),
                "payment_currency": currency,
                "payment_id": int(payment_id) if payment_id is not None else None,
                "claim_id": int(claim_id) if claim_id is not None else None,
                "created_at": iso_or_none(created_at),
            }
        )
    return items
