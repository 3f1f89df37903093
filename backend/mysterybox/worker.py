import asyncio
import logging
from datetime import datetime, timezone, timedelta

import psycopg2

from mysterybox import config, db
from mysterybox.notifications.discord import DiscordNotifier, NotificationDeliveryError
from mysterybox.utils.sql_builders import _apply_job_timeouts

logger = logging.getLogger("mysterybox.worker")


def next_backoff_seconds(retry: int) -> int:
    schedule = config.NOTIFY_BACKOFF_SECONDS
    return schedule[min(max(retry, 1) - 1, len(schedule) - 1)]


def process_once(conn, notifier: DiscordNotifier) -> int:
    cur = conn.cursor()
    _apply_job_timeouts(cur)
    now = datetime.now(timezone.utc)
    cur.execute(
        """
        SELECT id, event_type, payload, retry_count
          FROM notification_outbox
         WHERE status IN ('PENDING','RETRYING')
           AND next_retry_at <= %s
         ORDER BY next_retry_at ASC, id ASC
         LIMIT 20
         FOR UPDATE SKIP LOCKED
        """,
        (now,),
    )
    rows = cur.fetchall()
    if not rows:
        conn.commit()
        return 0

    processed = 0
    for outbox_id, event_type, payload, retry_count in rows:
        try:
            notifier.send(event_type, payload or {})
        except (NotificationDeliveryError, ValueError) as exc:
            retry = retry_count + 1
            if isinstance(exc, ValueError) or retry >= config.NOTIFY_MAX_RETRIES:
                cur.execute(
                    "UPDATE notification_outbox SET status='FAILED', retry_count=%s, last_error=%s, updated_at=%s WHERE id=%s",
                    (retry, str(exc)[:500], now, outbox_id),
                )
                logger.error("notification_failed outbox_id=%s event_type=%s error=%s", outbox_id, event_type, exc)
            else:
                backoff = next_backoff_seconds(retry)
                cur.execute(
                    """
                    UPDATE notification_outbox
                       SET status='RETRYING',
                           retry_count=%s,
                           next_retry_at=%s,
                           last_error=%s,
                           updated_at=%s
                     WHERE id=%s
                    """,
                    (retry, now + timedelta(seconds=backoff), str(exc)[:500], now, outbox_id),
                )
                logger.warning(
                    "notification_retrying outbox_id=%s event_type=%s retry=%s backoff=%s",
                    outbox_id, event_type, retry, backoff,
                )
        else:
            cur.execute(
                "UPDATE notification_outbox SET status='DONE', last_error=NULL, updated_at=%s WHERE id=%s",
                (now, outbox_id),
            )
        processed += 1
    conn.commit()
    return processed


def _drain_once(notifier: DiscordNotifier) -> int:
    """One pass over the outbox. Database errors are logged; the next poll retries."""
    try:
        with db.get_conn() as conn:
            return process_once(conn, notifier)
    except psycopg2.Error:
        logger.exception("notification_batch_failed")
        return 0


async def main():
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    db.init_pool()
    notifier = DiscordNotifier()
    try:
        while True:
            processed = await asyncio.to_thread(_drain_once, notifier)
            if processed:
                logger.info("notification_batch processed=%s", processed)
            await asyncio.sleep(config.NOTIFY_POLL_INTERVAL_SECONDS)
    finally:
        db.close_pool()


if __name__ == "__main__":
    asyncio.run(main())
