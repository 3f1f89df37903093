from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class HealthResponse(BaseModel):
    status: str


# Admin requests use the admin UI's camelCase keys.

class ClaimActionRequest(BaseModel):
    claimId: int


class ManualOpenRequest(BaseModel):
    userEmail: Optional[str] = None
    paymentId: Optional[int] = None
    prizeName: Optional[str] = None
    boxNumber: Optional[int | str] = Field(default=None, description="1-based box number; numeric strings accepted")


class DirectBoxOpeningRequest(BaseModel):
    boxNumber: Optional[int | str] = None
    prizeName: Optional[str] = None
    prizeValue: Optional[int] = Field(default=None, ge=0)
    prizeGlow: Optional[str] = None


class PrizeClaimItem(BaseModel):
    id: int
    status: str
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    payment_id: Optional[int] = None
    payment_amount: Optional[int] = None
    payment_currency: Optional[str] = None
    prize_type_id: Optional[int] = None
    prize_name: Optional[str] = None
    prize_value: Optional[int] = None
    prize_glow: Optional[str] = None
    box_number: Optional[int] = None
    notes: Optional[str] = None
    opened_by: Optional[str] = None
    opened_at: Optional[str] = None
    delivered_at: Optional[str] = None
    created_at: Optional[str] = None


class PrizeClaimActionResponse(BaseModel):
    prize_claim: PrizeClaimItem
    message: str


class ManualOpenResponse(BaseModel):
    success: bool
    message: str
    prize_claim: PrizeClaimItem


class DirectBoxOpeningResponse(BaseModel):
    success: bool
    message: str
    direct_opening: PrizeClaimItem


class PrizeClaimsListResponse(BaseModel):
    filter: str
    count: int
    prize_claims: List[PrizeClaimItem]


class OpenedBox(BaseModel):
    prize: str
    value: int
    opened: bool
    glow: str


class OpenedBoxesResponse(BaseModel):
    success: bool
    opened_boxes: Dict[int, OpenedBox]
    total_opened: int


class PendingUserItem(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    payment_amount: int
    payment_currency: Optional[str] = None
    payment_id: Optional[int] = None
    claim_id: Optional[int] = None
    created_at: Optional[str] = None


class PendingUsersResponse(BaseModel):
    success: bool
    pending_users: List[PendingUserItem]
    count: int


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class PaymentItem(BaseModel):
    id: int
    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    amount: int
    currency: str
    status: str
    created_at: Optional[str] = None


class PaymentsListResponse(BaseModel):
    payments: List[PaymentItem]


class WebhookAckResponse(BaseModel):
    received: bool
    event_type: str
    recorded: bool = False
    payment_id: Optional[int] = None
    claim_id: Optional[int] = None


class BoardBox(BaseModel):
    box_number: int
    opened: bool
    prize: Optional[str] = None
    value: Optional[int] = None
    glow: Optional[str] = None


class BoardResponse(BaseModel):
    board_size: int
    opened_count: int
    boxes: List[BoardBox]


class ErrorResponse(BaseModel):
    detail: str
    message: str
    errors: Optional[List[Dict[str, Any]]] = None
