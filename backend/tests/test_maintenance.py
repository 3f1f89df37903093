from mysterybox.maintenance import main, purge_prize_claims

from conftest import seed_paid_claim


def test_purge_requires_confirmation(capsys):
    assert main(["purge-claims"]) == 2
    assert "--yes" in capsys.readouterr().err


def test_purge_deletes_claims_and_their_notifications(db_conn):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    cur = db_conn.cursor()
    cur.execute(
        "INSERT INTO admin_notifications (type, title, message, user_id, prize_claim_id) VALUES ('NEW_PAYMENT', 't', 'm', 'user_alice', %s)",
        (claim_id,),
    )
    cur.execute(
        "INSERT INTO admin_notifications (type, title, message, user_id) VALUES ('SYSTEM_ALERT', 't', 'm', 'user_alice')"
    )
    db_conn.commit()

    result = purge_prize_claims(db_conn)
    assert result == {"claims": 1, "notifications": 1}

    cur.execute("SELECT COUNT(*) FROM prize_claims")
    assert cur.fetchone()[0] == 0
    cur.execute("SELECT COUNT(*) FROM admin_notifications")
    assert cur.fetchone()[0] == 1
    cur.execute("SELECT COUNT(*) FROM payments")
    assert cur.fetchone()[0] == 1
    cur.execute("SELECT event_type, payload->>'severity' FROM notification_outbox")
    assert cur.fetchall() == [("SYSTEM_ALERT", "warning")]
    db_conn.commit()
