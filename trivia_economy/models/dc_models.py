from pydantic import BaseModel, Field
from enum import Enum
from uuid import UUID
from datetime import datetime
from typing import Optional, List

from trivia_economy.models.schema_models import SpeedTokenSchema


class BoosterCodeModel(str, Enum):
    free = "FREE"
    gold_saver = "GOLD_SAVER"
    premium = "PREMIUM"
    speed_boost = "SPEED_BOOST"


class WalletViewModel(BaseModel):
    user_id: UUID
    coins: int
    lives: int
    max_lives: int
    next_life_at: Optional[datetime] = None
    regen_interval_seconds: int
    server_time: datetime
    active_speed_token: Optional[SpeedTokenSchema] = None
    pending_speed_tokens: List[SpeedTokenSchema] = []
    has_pending_premium_booster: bool = False


class WalletSyncModel(BaseModel):
    wallet: WalletViewModel
    round_trip_ms: float
    estimated_server_time_ms: float
    server_drift_ms: float


class GoldPurchaseModel(BaseModel):
    booster_code: BoosterCodeModel
    request_id: str = Field(min_length=1, max_length=128)


class PaymentConfirmationModel(BaseModel):
    user_id: UUID
    booster_code: BoosterCodeModel
    transaction_id: str = Field(min_length=1, max_length=200)


class SpeedTokenActivationModel(BaseModel):
    token_id: Optional[UUID] = None


class RankedUserModel(BaseModel):
    user_id: UUID
    rank: int = Field(ge=1)


class RewardRunModel(BaseModel):
    period_key: Optional[str] = None  # YYYY-MM-DD, defaults to the period that just closed
    ranked_users: Optional[List[RankedUserModel]] = None


class WalletCreateModel(BaseModel):
    user_id: UUID
    is_subscriber: bool = False


class ManualCreditModel(BaseModel):
    target_user_id: UUID
    delta_coins: int = 0
    delta_lives: int = 0
    reason: str
    idempotency_key: str


class PurchaseResultModel(BaseModel):
    booster_code: str
    coins: int
    lives: int
    applied: bool
    speed_tokens_granted: int = 0


class PremiumActivationResultModel(BaseModel):
    tokens_created: int
    duration_minutes: int
    multiplier: int


class ManualCreditResultModel(BaseModel):
    target_user_id: UUID
    coins: int
    lives: int
    applied: bool


class CheckoutRequestModel(BaseModel):
    booster_code: BoosterCodeModel


class CheckoutModel(BaseModel):
    booster_code: str
    price_usd_cents: int


class ReferralModel(BaseModel):
    inviter_user_id: UUID
    invited_user_id: UUID


class ReferralResultModel(BaseModel):
    inviter_user_id: UUID
    coins: int
    applied: bool


class RankingResultModel(BaseModel):
    user_id: UUID
    score: int = Field(ge=0)
    average_response_time: Optional[float] = None


class RankingUploadModel(BaseModel):
    period_type: str = Field(pattern="^(daily|weekly)$")
    period_key: str  # YYYY-MM-DD, a Monday for weekly
    results: List[RankingResultModel] = Field(min_length=1)
