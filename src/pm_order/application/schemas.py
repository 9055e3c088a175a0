# src/pm_order/application/schemas.py
from datetime import datetime

from pydantic import BaseModel, Field

from src.pm_common.enums import Outcome


class PlaceBetRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    outcome: Outcome
    user_id: str = Field(..., min_length=1)
    answer_id: str | None = None


class SellSharesRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    outcome: Outcome
    user_id: str = Field(..., min_length=1)
    shares: float | None = Field(None, gt=0, allow_inf_nan=False)  # None = whole position
    answer_id: str | None = None


class PlaceLimitOrderRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    outcome: Outcome
    limit_prob: float = Field(..., gt=0, lt=1, allow_inf_nan=False)
    user_id: str = Field(..., min_length=1)
    answer_id: str | None = None
    expires_at: datetime | None = None


class CancelOrderRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class BetOut(BaseModel):
    id: str
    user_id: str
    answer_id: str | None
    outcome: str
    amount: float
    shares: float
    prob_before: float
    prob_after: float
    is_redemption: bool
    limit_order_id: str | None


class PlaceBetResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    shares: float
    amount: float
    prob_before: float
    prob_after: float
    new_balance: float
    bets: list[BetOut]
    redemption_bets: list[BetOut]


class SellSharesResponse(BaseModel):
    contract_id: str
    answer_id: str | None
    shares: float
    payout: float
    prob_before: float
    prob_after: float
    new_balance: float
    bets: list[BetOut]
    redemption_bets: list[BetOut]


class LimitOrderOut(BaseModel):
    id: str
    user_id: str
    contract_id: str
    answer_id: str | None
    outcome: str
    limit_prob: float
    order_amount: float
    amount: float
    shares: float
    remaining_amount: float
    status: str
    expires_at: datetime | None = None
    created_at: datetime | None = None


class PlaceLimitOrderResponse(BaseModel):
    order: LimitOrderOut
    bets: list[BetOut]
    new_balance: float


class CancelOrderResponse(BaseModel):
    order_id: str
    status: str
    refund: float
    new_balance: float


class ExpireOrdersResponse(BaseModel):
    expired_count: int
    total_refunded: float
    order_ids: list[str]
