"""Common service utilities and helpers.

Shared functions across services for timestamps, idempotency and serialization.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
import hashlib
import json
import uuid
import logging

from fastapi import HTTPException
from psycopg2.extras import Json

from mysterybox import config


logger = logging.getLogger("mysterybox.service")


def now_utc() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def hash_request_body(body: Dict[str, Any]) -> str:
    """Hash request body for idempotency comparison."""
    payload = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def validate_idempotency_key(value: str | None) -> str:
    """Return a usable idempotency key, generating one when missing."""
    raw = (value or "").strip()
    if not raw:
        raw = f"auto-{uuid.uuid4()}"
    if len(raw) > 128:
        raise HTTPException(status_code=400, detail="INVALID_IDEMPOTENCY_KEY")
    return raw


def idempotency_scope(admin_user_id: str) -> str:
    """Idempotency keys are scoped to the acting administrator."""
    return f"admin:{admin_user_id}"


def idempotency_start(cur, *, key: str, scope: str, endpoint: str, request_hash: str) -> Dict[str, Any]:
    """Start idempotency check. Returns status dict."""
    cur.execute(
        """
        SELECT request_hash, status, response_status, response_body
          FROM idempotency_keys
         WHERE key=%s AND scope=%s AND endpoint=%s
           AND expires_at > NOW()
        """,
        (key, scope, endpoint),
    )
    row = cur.fetchone()
    if row:
        existing_hash, status, response_status, response_body = row
        if existing_hash != request_hash:
            logger.warning(
                "idempotency_key_reuse endpoint=%s scope=%s key=%s status=%s",
                endpoint, scope, key, status,
            )
            raise HTTPException(status_code=409, detail="IDEMPOTENCY_KEY_REUSE")
        if status == "DONE":
            logger.info(
                "idempotency_replayed endpoint=%s scope=%s key=%s",
                endpoint, scope, key,
            )
            return {
                "status": "replayed",
                "response_status": int(response_status or 200),
                "response_body": response_body,
            }
        logger.info(
            "idempotency_in_progress endpoint=%s scope=%s key=%s status=%s",
            endpoint, scope, key, status,
        )
        return {"status": "in_progress"}

    # Expired rows for the same key are replaced.
    cur.execute(
        "DELETE FROM idempotency_keys WHERE key=%s AND scope=%s AND endpoint=%s",
        (key, scope, endpoint),
    )
    expires_at = now_utc() + timedelta(hours=config.IDEMPOTENCY_TTL_HOURS)
    cur.execute(
        """
        INSERT INTO idempotency_keys
            (key, scope, endpoint, request_hash, status, expires_at)
        VALUES (%s, %s, %s, %s, 'IN_PROGRESS', %s)
        """,
        (key, scope, endpoint, request_hash, expires_at),
    )
    return {"status": "recorded"}


def idempotency_finish(cur, *, key: str, scope: str, endpoint: str, response_status: int, response_body: Dict[str, Any]):
    """Finish idempotency record with response."""
    cur.execute(
        """
        UPDATE idempotency_keys
           SET status='DONE',
               response_status=%s,
               response_body=%s,
               updated_at=NOW()
         WHERE key=%s AND scope=%s AND endpoint=%s
        """,
        (response_status, Json(response_body), key, scope, endpoint),
    )
