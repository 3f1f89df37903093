from fastapi import HTTPException

from mysterybox import config
from mysterybox.constants import CLAIM_FILTER_STATUS


def _build_claim_filter_sql(filter_name: str | None) -> tuple[str, list]:
    """Return (where_sql, params) for the prize_claims listing (alias pc)."""
    key = (filter_name or "all").strip().lower()
    if key not in CLAIM_FILTER_STATUS:
        raise HTTPException(status_code=400, detail="INVALID_FILTER")
    status = CLAIM_FILTER_STATUS[key]
    if status is None:
        return "TRUE", []
    return "pc.status = %s", [status]


def _apply_job_timeouts(cur):
    cur.execute("SET LOCAL lock_timeout = %s", (f"{config.JOB_LOCK_TIMEOUT_MS}ms",))
    cur.execute("SET LOCAL statement_timeout = %s", (f"{config.JOB_STATEMENT_TIMEOUT_MS}ms",))
