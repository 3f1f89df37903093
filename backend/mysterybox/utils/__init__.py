from .auth import SessionIdentity, is_user_authorized, verify_session_token
from .audit import _log_admin_notification
from .parsers import _normalize_text, _parse_box_number, _parse_int_optional
from .sql_builders import _apply_job_timeouts, _build_claim_filter_sql

__all__ = [
    "SessionIdentity",
    "_apply_job_timeouts",
    "_build_claim_filter_sql",
    "_log_admin_notification",
    "_normalize_text",
    "_parse_box_number",
    "_parse_int_optional",
    "is_user_authorized",
    "verify_session_token",
]
