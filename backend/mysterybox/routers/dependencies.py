"""Dependencies for router injection.

Session verification and the admin gate shared across routers.
"""

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mysterybox.config import AccessControlConfig, load_access_control
from mysterybox.utils.auth import SessionIdentity, is_user_authorized, verify_session_token

__all__ = ["get_access_control", "get_current_identity", "require_admin"]

_bearer = HTTPBearer(auto_error=False)


def get_access_control(request: Request) -> AccessControlConfig:
    """Access-control settings attached to the app at startup."""
    access = getattr(request.app.state, "access_control", None)
    if access is None:
        access = load_access_control()
        request.app.state.access_control = access
    return access


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> SessionIdentity:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    return verify_session_token(credentials.credentials)


def require_admin(
    identity: SessionIdentity = Depends(get_current_identity),
    access: AccessControlConfig = Depends(get_access_control),
) -> SessionIdentity:
    if not is_user_authorized(access, identity.email, identity.user_id):
        raise HTTPException(status_code=403, detail="FORBIDDEN")
    return identity
