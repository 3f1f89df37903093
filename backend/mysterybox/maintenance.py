"""Out-of-band maintenance commands.

    python -m mysterybox.maintenance purge-claims --yes
"""

import argparse
import logging
import sys

import psycopg2

from mysterybox import config, db
from mysterybox.services.notification_service import enqueue_event

logger = logging.getLogger("mysterybox.maintenance")


def purge_prize_claims(conn) -> dict:
    """Delete every prize claim and the admin notifications that reference one."""
    cur = conn.cursor()
    cur.execute("DELETE FROM admin_notifications WHERE prize_claim_id IS NOT NULL")
    notifications = cur.rowcount
    cur.execute("DELETE FROM prize_claims")
    claims = cur.rowcount
    enqueue_event(
        cur,
        "SYSTEM_ALERT",
        {
            "title": "Prize Claims Purged",
            "message": f"{claims} prize claims and {notifications} admin notifications were deleted",
            "severity": "warning",
        },
    )
    conn.commit()
    logger.warning("prize_claims_purged claims=%s notifications=%s", claims, notifications)
    return {"claims": claims, "notifications": notifications}


def _purge_claims(args) -> int:
    if not args.yes:
        print("Refusing to purge without --yes", file=sys.stderr)
        return 2
    db.init_pool()
    try:
        with db.get_conn() as conn:
            result = purge_prize_claims(conn)
    except psycopg2.Error as exc:
        logger.error("prize_claims_purge_failed error=%s", exc)
        return 1
    finally:
        db.close_pool()
    print(f"Deleted {result['claims']} prize claims and {result['notifications']} notifications")
    return 0


def main(argv=None) -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    parser = argparse.ArgumentParser(description="Mystery box maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    purge_parser = subparsers.add_parser("purge-claims", help="Delete every prize claim")
    purge_parser.add_argument("--yes", action="store_true", help="Confirm the purge")
    purge_parser.set_defaults(func=_purge_claims)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
