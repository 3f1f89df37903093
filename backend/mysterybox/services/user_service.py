"""User service layer.

Users are owned by the identity provider; this table mirrors the fields the
admin views need and is kept current from verified session tokens.
"""

from fastapi import HTTPException

from mysterybox.utils.auth import SessionIdentity
from mysterybox.utils.parsers import _normalize_text


def ensure_user(cur, identity: SessionIdentity) -> str:
    """Upsert the caller's user row and return its id."""
    cur.execute(
        """
        INSERT INTO users (id, email, name)
        VALUES (%s, %s, %s)
        ON CONFLICT (id) DO UPDATE
           SET email = COALESCE(EXCLUDED.email, users.email),
               name = COALESCE(EXCLUDED.name, users.name)
        RETURNING id
        """,
        (identity.user_id, identity.email, identity.name),
    )
    return str(cur.fetchone()[0])


def ensure_user_id(cur, user_id: str) -> None:
    """Make sure a bare user id exists (webhook metadata may precede any login)."""
    cur.execute(
        "INSERT INTO users (id) VALUES (%s) ON CONFLICT (id) DO NOTHING",
        (user_id,),
    )


def get_user_by_email(cur, email: str | None) -> dict:
    normalized = _normalize_text(email)
    if not normalized:
        raise HTTPException(status_code=400, detail="USER_EMAIL_REQUIRED")
    cur.execute(
        "SELECT id, email, name FROM users WHERE lower(email) = lower(%s)",
        (normalized,),
    )
    row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="USER_NOT_FOUND")
    return {"id": row[0], "email": row[1], "name": row[2]}


def get_user(cur, user_id: str) -> dict | None:
    cur.execute("SELECT id, email, name FROM users WHERE id=%s", (user_id,))
    row = cur.fetchone()
    if not row:
        return None
    return {"id": row[0], "email": row[1], "name": row[2]}


def display_name(user: dict | None) -> str:
    if not user:
        return "Unknown"
    return user.get("name") or user.get("email") or "Unknown"
