"""Outbound notification queue.

Lifecycle handlers enqueue events after their own transaction commits; the
worker delivers them. A failed enqueue is logged and dropped, never raised to
the request that triggered it.
"""

import logging
from typing import Any, Dict

import psycopg2
from psycopg2.extras import Json

from mysterybox import db

logger = logging.getLogger("mysterybox.notify")


def enqueue_event(cur, event_type: str, payload: Dict[str, Any]) -> int:
    cur.execute(
        """
        INSERT INTO notification_outbox (event_type, payload, status, retry_count, next_retry_at)
        VALUES (%s, %s, 'PENDING', 0, NOW())
        RETURNING id
        """,
        (event_type, Json(payload)),
    )
    return int(cur.fetchone()[0])


def enqueue_notification(event_type: str, payload: Dict[str, Any]) -> int | None:
    """Best-effort enqueue on a separate connection. Returns the outbox id or None."""
    try:
        with db.get_conn() as conn:
            cur = conn.cursor()
            outbox_id = enqueue_event(cur, event_type, payload)
            conn.commit()
    except (psycopg2.Error, RuntimeError):
        logger.exception("notification_enqueue_failed event_type=%s", event_type)
        return None
    logger.info("notification_enqueued event_type=%s outbox_id=%s", event_type, outbox_id)
    return outbox_id
