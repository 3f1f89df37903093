from conftest import seed_paid_claim, seed_user


def _claim_row(db_conn, claim_id):
    cur = db_conn.cursor()
    cur.execute(
        "SELECT status, prize_type_id, opened_at, delivered_at, box_number FROM prize_claims WHERE id=%s",
        (claim_id,),
    )
    row = cur.fetchone()
    db_conn.commit()
    return row


def test_open_then_deliver(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice", "alice@example.com", "Alice")

    resp = client.post("/admin/open-prize", json={"claimId": claim_id}, headers=admin_headers)
    assert resp.status_code == 200
    claim = resp.json()["prize_claim"]
    assert claim["status"] == "OPENED"
    assert claim["prize_name"]
    assert claim["opened_at"]
    assert claim["opened_by"] == "user_admin"
    assert resp.headers["Idempotency-Status"] == "recorded"

    resp = client.post("/admin/mark-delivered", json={"claimId": claim_id}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["prize_claim"]["status"] == "DELIVERED"

    status, prize_type_id, opened_at, delivered_at, _box = _claim_row(db_conn, claim_id)
    assert status == "DELIVERED"
    assert prize_type_id is not None
    assert opened_at is not None and delivered_at is not None

    cur = db_conn.cursor()
    cur.execute("SELECT type FROM admin_notifications WHERE prize_claim_id=%s ORDER BY id", (claim_id,))
    assert [r[0] for r in cur.fetchall()] == ["PRIZE_OPENED", "PRIZE_DELIVERED"]
    cur.execute("SELECT event_type FROM notification_outbox ORDER BY id")
    assert [r[0] for r in cur.fetchall()] == ["PRIZE_OPENED", "PRIZE_DELIVERED"]
    db_conn.commit()


def test_open_non_pending_leaves_claim_unchanged(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    assert client.post("/admin/open-prize", json={"claimId": claim_id}, headers=admin_headers).status_code == 200
    before = _claim_row(db_conn, claim_id)

    resp = client.post("/admin/open-prize", json={"claimId": claim_id}, headers={**admin_headers, "X-Idempotency-Key": "second"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "CLAIM_NOT_PENDING"
    assert _claim_row(db_conn, claim_id) == before


def test_deliver_pending_leaves_claim_unchanged(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    resp = client.post("/admin/mark-delivered", json={"claimId": claim_id}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "CLAIM_NOT_OPENED"
    status, prize_type_id, opened_at, delivered_at, _box = _claim_row(db_conn, claim_id)
    assert (status, prize_type_id, opened_at, delivered_at) == ("PENDING_ADMIN_OPEN", None, None, None)


def test_unknown_claim_is_404(client, admin_headers):
    resp = client.post("/admin/open-prize", json={"claimId": 999999}, headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "CLAIM_NOT_FOUND"


def test_idempotent_replay(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    headers = {**admin_headers, "X-Idempotency-Key": "open-1"}
    first = client.post("/admin/open-prize", json={"claimId": claim_id}, headers=headers)
    second = client.post("/admin/open-prize", json={"claimId": claim_id}, headers=headers)
    assert first.status_code == 200
    assert second.status_code == 200
    assert second.headers["Idempotency-Status"] == "replayed"
    assert second.json() == first.json()

    reused = client.post("/admin/open-prize", json={"claimId": claim_id + 1}, headers=headers)
    assert reused.status_code == 409
    assert reused.json()["detail"] == "IDEMPOTENCY_KEY_REUSE"


def test_manual_open_by_payment_uses_box_number(client, db_conn, admin_headers):
    payment_id, claim_id = seed_paid_claim(db_conn, "user_alice", "alice@example.com", "Alice")
    resp = client.post(
        "/admin/manual-open-prize",
        json={"paymentId": payment_id, "boxNumber": "3"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    claim = body["prize_claim"]
    # The pending claim for the payment is the one that gets opened.
    assert claim["id"] == claim_id
    assert claim["prize_name"] == "151 ETB"
    assert claim["box_number"] == 3
    assert "(Box 3)" in claim["notes"]


def test_manual_open_twice_for_same_payment(client, db_conn, admin_headers):
    payment_id, _claim_id = seed_paid_claim(db_conn, "user_alice")
    first = client.post(
        "/admin/manual-open-prize",
        json={"paymentId": payment_id, "prizeName": "Random Pack"},
        headers={**admin_headers, "X-Idempotency-Key": "m1"},
    )
    assert first.status_code == 200
    second = client.post(
        "/admin/manual-open-prize",
        json={"paymentId": payment_id, "prizeName": "Womp Womp"},
        headers={**admin_headers, "X-Idempotency-Key": "m2"},
    )
    assert second.status_code == 400
    assert second.json()["detail"] == "PAYMENT_ALREADY_OPENED"


def test_manual_open_by_email(client, db_conn, admin_headers):
    seed_user(db_conn, "user_carol", "Carol@Example.com", "Carol")
    resp = client.post(
        "/admin/manual-open-prize",
        json={"userEmail": "carol@example.com", "prizeName": "Signed Poster"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    claim = resp.json()["prize_claim"]
    assert claim["user_id"] == "user_carol"
    assert claim["payment_id"] is None
    assert claim["prize_name"] == "Signed Poster"
    assert claim["prize_value"] == 0
    assert claim["prize_glow"] == "green"

    again = client.post(
        "/admin/manual-open-prize",
        json={"userEmail": "carol@example.com"},
        headers=admin_headers,
    )
    assert again.status_code == 400
    assert again.json()["detail"] == "USER_ALREADY_HAS_OPENED_PRIZE"


def test_manual_open_validation(client, db_conn, admin_headers):
    resp = client.post("/admin/manual-open-prize", json={}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "USER_EMAIL_OR_PAYMENT_REQUIRED"

    resp = client.post("/admin/manual-open-prize", json={"userEmail": "ghost@example.com"}, headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "USER_NOT_FOUND"

    resp = client.post("/admin/manual-open-prize", json={"paymentId": 424242}, headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "PAYMENT_NOT_FOUND"

    seed_user(db_conn, "user_dave", "dave@example.com")
    resp = client.post(
        "/admin/manual-open-prize",
        json={"userEmail": "dave@example.com", "boxNumber": 1001},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "INVALID_BOX_NUMBER"


def test_direct_box_opening(client, db_conn, admin_headers):
    resp = client.post(
        "/admin/direct-box-opening",
        json={"boxNumber": 17, "prizeName": "Mystery Mug", "prizeValue": 1200, "prizeGlow": "purple"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    opening = resp.json()["direct_opening"]
    assert opening["status"] == "OPENED"
    assert opening["payment_id"] is None
    assert opening["user_id"] == "user_admin"
    assert opening["box_number"] == 17
    assert opening["prize_value"] == 1200
    assert opening["prize_glow"] == "purple"
    assert "No user assigned" in opening["notes"]

    again = client.post(
        "/admin/direct-box-opening",
        json={"boxNumber": 17, "prizeName": "Mystery Mug"},
        headers=admin_headers,
    )
    assert again.status_code == 400
    assert again.json()["detail"] == "BOX_ALREADY_OPENED"


def test_listing_filters(client, db_conn, admin_headers):
    _p1, pending_id = seed_paid_claim(db_conn, "user_alice", amount=500)
    _p2, opened_id = seed_paid_claim(db_conn, "user_bob", amount=501)
    client.post("/admin/open-prize", json={"claimId": opened_id}, headers=admin_headers)

    all_resp = client.get("/admin/prize-claims", headers=admin_headers).json()
    assert all_resp["filter"] == "all"
    assert all_resp["count"] == 2

    pending = client.get("/admin/prize-claims?filter=pending", headers=admin_headers).json()
    assert [c["id"] for c in pending["prize_claims"]] == [pending_id]
    assert pending["prize_claims"][0]["payment_amount"] == 500

    opened = client.get("/admin/prize-claims?filter=opened", headers=admin_headers).json()
    assert [c["id"] for c in opened["prize_claims"]] == [opened_id]

    delivered = client.get("/admin/prize-claims?filter=delivered", headers=admin_headers).json()
    assert delivered["count"] == 0

    bad = client.get("/admin/prize-claims?filter=bogus", headers=admin_headers)
    assert bad.status_code == 400
    assert bad.json()["detail"] == "INVALID_FILTER"


def test_opened_boxes_format(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    client.post("/admin/open-prize", json={"claimId": claim_id}, headers=admin_headers)
    client.post(
        "/admin/direct-box-opening",
        json={"boxNumber": 42, "prizeName": "Random Pack"},
        headers=admin_headers,
    )

    resp = client.get("/admin/prize-claims?format=boxes", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["total_opened"] == 2
    # No box number on the randomly opened claim: keyed by its position.
    assert set(body["opened_boxes"]) == {"1", "42"}
    assert body["opened_boxes"]["42"] == {"prize": "Random Pack", "value": 500, "opened": True, "glow": "blue"}


def test_pending_users(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice", "alice@example.com", "Alice")
    cur = db_conn.cursor()
    seed_user(db_conn, "user_erin", "erin@example.com", "Erin")
    cur.execute(
        "INSERT INTO payments (user_id, stripe_session_id, amount, currency, status) VALUES ('user_erin', 'cs_erin', 500, 'usd', 'paid')"
    )
    db_conn.commit()

    resp = client.get("/admin/pending-users", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 2
    by_user = {item["id"]: item for item in body["pending_users"]}
    assert by_user["user_alice"]["claim_id"] == claim_id
    assert by_user["user_erin"]["claim_id"] is None
    assert by_user["user_erin"]["payment_amount"] == 500


def test_board_reveals_only_opened_boxes(client, db_conn, admin_headers, user_headers):
    client.post(
        "/admin/direct-box-opening",
        json={"boxNumber": 3, "prizeName": "151 ETB"},
        headers=admin_headers,
    )
    resp = client.get("/boxes", headers=user_headers)
    assert resp.status_code == 200
    board = resp.json()
    assert board["board_size"] == 1000
    assert board["opened_count"] == 1
    assert len(board["boxes"]) == 1000
    box3 = board["boxes"][2]
    assert box3 == {"box_number": 3, "opened": True, "prize": "151 ETB", "value": 5000, "glow": "gold"}
    assert board["boxes"][0] == {"box_number": 1, "opened": False, "prize": None, "value": None, "glow": None}


def test_manual_open_after_delivery_refused(client, db_conn, admin_headers):
    payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    client.post("/admin/open-prize", json={"claimId": claim_id}, headers=admin_headers)
    client.post("/admin/mark-delivered", json={"claimId": claim_id}, headers=admin_headers)

    resp = client.post(
        "/admin/manual-open-prize",
        json={"paymentId": payment_id, "prizeName": "Womp Womp"},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "PAYMENT_ALREADY_OPENED"

    cur = db_conn.cursor()
    cur.execute("SELECT id, status FROM prize_claims WHERE payment_id=%s", (payment_id,))
    assert cur.fetchall() == [(claim_id, "DELIVERED")]
    db_conn.commit()


def test_opened_boxes_keeps_numbered_box_over_position(client, db_conn, admin_headers):
    _payment_id, claim_id = seed_paid_claim(db_conn, "user_alice")
    client.post("/admin/open-prize", json={"claimId": claim_id}, headers=admin_headers)
    client.post(
        "/admin/direct-box-opening",
        json={"boxNumber": 1, "prizeName": "Unified Minds Booster Box"},
        headers=admin_headers,
    )

    body = client.get("/admin/prize-claims?format=boxes", headers=admin_headers).json()
    assert body["total_opened"] == 2
    assert body["opened_boxes"]["1"]["prize"] == "Unified Minds Booster Box"


def test_direct_opening_does_not_block_admin_manual_open(client, db_conn, admin_headers):
    client.post(
        "/admin/direct-box-opening",
        json={"boxNumber": 5, "prizeName": "Random Pack"},
        headers=admin_headers,
    )
    resp = client.post(
        "/admin/manual-open-prize",
        json={"userEmail": "admin@example.com", "prizeName": "Womp Womp"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["prize_claim"]["user_id"] == "user_admin"

    again = client.post(
        "/admin/manual-open-prize",
        json={"userEmail": "admin@example.com"},
        headers=admin_headers,
    )
    assert again.status_code == 400
    assert again.json()["detail"] == "USER_ALREADY_HAS_OPENED_PRIZE"
