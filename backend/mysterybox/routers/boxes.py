"""Box board router."""

from fastapi import APIRouter, Depends

from mysterybox import db
from mysterybox.schemas import BoardResponse
from mysterybox.routers.dependencies import get_current_identity
from mysterybox.services.board_service import build_board
from mysterybox.utils.auth import SessionIdentity

router = APIRouter(tags=["boxes"])


@router.get("/boxes", response_model=BoardResponse)
async def board(_identity: SessionIdentity = Depends(get_current_identity)):
    """Current board state. Unopened boxes do not reveal their prize."""
    with db.get_conn() as conn:
        cur = conn.cursor()
        result = build_board(cur)
    return BoardResponse(**result)
