def _log_admin_notification(
    conn,
    notification_type: str,
    title: str,
    message: str,
    user_id: str | None,
    prize_claim_id: int | None = None,
):
    """Append an admin notification (audit trail) in the caller's transaction."""
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO admin_notifications
            (type, title, message, user_id, prize_claim_id)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (
            notification_type,
            title,
            message,
            user_id,
            prize_claim_id,
        ),
    )
