from pydantic import AliasChoices, BaseModel, Field, TypeAdapter
from typing import Annotated, Literal, Optional, Union
from uuid import UUID
from datetime import datetime


class LedgerEntrySchema(BaseModel):
    id: UUID
    user_id: UUID
    delta_coins: int
    delta_lives: int
    source: str
    idempotency_key: str
    metadata: dict = Field(default_factory=dict, validation_alias=AliasChoices("entry_metadata", "metadata"))
    coins_after: Optional[int] = None
    lives_after: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SpeedTokenSchema(BaseModel):
    id: UUID
    user_id: UUID
    duration_minutes: int
    multiplier: int
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    source: str
    created_at: datetime

    class Config:
        from_attributes = True


# Ledger metadata, one shape per ledger source


class PurchaseMetadata(BaseModel):
    source: Literal["purchase"] = "purchase"
    booster_code: str
    transaction_id: Optional[str] = None
    request_id: Optional[str] = None
    price_gold: int = 0
    price_usd_cents: int = 0


class SpeedTickMetadata(BaseModel):
    source: Literal["speed_tick"] = "speed_tick"
    multiplier: int
    tick_number: int
    tick_timestamp: datetime


class RegenMetadata(BaseModel):
    source: Literal["regen"] = "regen"
    lives_granted: int
    interval_seconds: int
    boundary: datetime


class PeriodicRewardMetadata(BaseModel):
    source: Literal["daily_reward", "weekly_reward"]
    period_type: Literal["daily", "weekly"]
    period_key: str
    rank: int


class AdminManualMetadata(BaseModel):
    source: Literal["admin_manual"] = "admin_manual"
    admin_username: str
    reason: str


class ReferralMetadata(BaseModel):
    source: Literal["referral"] = "referral"
    referrer_user_id: Optional[UUID] = None
    referred_user_id: Optional[UUID] = None


LedgerMetadata = Annotated[
    Union[
        PurchaseMetadata,
        SpeedTickMetadata,
        RegenMetadata,
        PeriodicRewardMetadata,
        AdminManualMetadata,
        ReferralMetadata,
    ],
    Field(discriminator="source"),
]

ledger_metadata_adapter = TypeAdapter(LedgerMetadata)


# Service results


class CreditResult(BaseModel):
    coins: int
    lives: int
    applied: bool
    entry_id: Optional[UUID] = None


class SpeedTickSweepResult(BaseModel):
    processed: int = 0
    expired: int = 0
    ticks_credited: int = 0
    ticks_failed: int = 0
    users_failed: int = 0


class DistributionResult(BaseModel):
    period_type: str
    period_key: str
    awarded: int = 0
    skipped: int = 0
    failed: int = 0
