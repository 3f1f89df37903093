from dataclasses import dataclass

import jwt
from fastapi import HTTPException

from mysterybox import config
from mysterybox.config import AccessControlConfig


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    email: str | None
    name: str | None


def verify_session_token(token: str) -> SessionIdentity:
    """Decode an identity-provider session token. Raises 401 on any failure."""
    try:
        claims = jwt.decode(
            token,
            config.SESSION_JWT_SECRET,
            algorithms=[config.SESSION_JWT_ALGORITHM],
            options={"require": ["sub"]},
        )
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED") from exc
    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    return SessionIdentity(
        user_id=user_id,
        email=claims.get("email") or None,
        name=claims.get("name") or None,
    )


def is_user_authorized(access: AccessControlConfig, email: str | None, user_id: str | None) -> bool:
    if not access.enabled:
        return True
    if email and access.authorized_email and email == access.authorized_email:
        return True
    if user_id and access.authorized_user_id and user_id == access.authorized_user_id:
        return True
    return False
