from typing import Any

from fastapi import HTTPException


def _parse_int_optional(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("INVALID_INT")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        return int(cleaned)
    return int(value)


def _parse_box_number(value: Any) -> int | None:
    """Box numbers arrive as ints or numeric strings from the admin UI."""
    try:
        return _parse_int_optional(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="INVALID_BOX_NUMBER") from exc


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    v = str(value).strip()
    return v or None
