from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column, ForeignKey, Index, PrimaryKeyConstraint, UniqueConstraint
from sqlalchemy.types import JSON, Boolean, DateTime, Float, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from uuid6 import uuid7
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


JsonData = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Wallet(Base):
    __tablename__ = "wallets"
    user_id = Column(Uuid, primary_key=True)
    coins = Column(Integer, nullable=False, default=0)
    lives = Column(Integer, nullable=False, default=0)
    max_lives = Column(Integer, nullable=False, default=15)
    is_subscriber = Column(Boolean, nullable=False, default=False)
    last_life_regen_at = Column(DateTime, nullable=False, default=utcnow)
    speed_booster_active = Column(Boolean, nullable=False, default=False)
    speed_booster_multiplier = Column(Integer, nullable=False, default=1)
    speed_booster_activated_at = Column(DateTime, nullable=True)
    speed_booster_expires_at = Column(DateTime, nullable=True)
    speed_tick_last_processed_at = Column(DateTime, nullable=True)
    speed_coins_per_tick = Column(Integer, nullable=False, default=0)
    speed_lives_per_tick = Column(Integer, nullable=False, default=0)
    tick_interval_seconds = Column(Integer, nullable=False, default=60)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_wallets_speed_active", "speed_booster_active"),
    )


class LedgerEntry(Base):
    __tablename__ = "wallet_ledger"
    id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(Uuid, ForeignKey("wallets.user_id"), nullable=False, index=True)
    delta_coins = Column(Integer, nullable=False, default=0)
    delta_lives = Column(Integer, nullable=False, default=0)
    source = Column(String(32), nullable=False)
    idempotency_key = Column(String(255), nullable=False)
    # "metadata" is reserved on declarative classes
    entry_metadata = Column("metadata", JsonData, nullable=False, default=dict)
    coins_after = Column(Integer, nullable=True)
    lives_after = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_wallet_ledger_idempotency_key"),
        Index("idx_wallet_ledger_user_created", "user_id", "created_at"),
    )


class SpeedToken(Base):
    __tablename__ = "speed_tokens"
    id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(Uuid, ForeignKey("wallets.user_id"), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    multiplier = Column(Integer, nullable=False, default=2)
    used_at = Column(DateTime, nullable=True)  # NULL means pending
    expires_at = Column(DateTime, nullable=True)
    source = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_speed_tokens_user_used", "user_id", "used_at"),
    )


class BoosterPendingState(Base):
    __tablename__ = "premium_booster_state"
    user_id = Column(Uuid, ForeignKey("wallets.user_id"), primary_key=True)
    has_pending_premium_booster = Column(Boolean, nullable=False, default=False)
    last_premium_purchase_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class PeriodicAward(Base):
    __tablename__ = "periodic_awards"
    user_id = Column(Uuid, nullable=False)
    period_type = Column(String(16), nullable=False)  # "daily" or "weekly"
    period_key = Column(String(16), nullable=False)  # YYYY-MM-DD
    rank = Column(Integer, nullable=False)
    awarded_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        PrimaryKeyConstraint("user_id", "period_type", "period_key", name="pk_periodic_awards"),
    )


class RankingEntry(Base):
    __tablename__ = "ranking_entries"
    id = Column(Uuid, primary_key=True, default=uuid7)
    period_type = Column(String(16), nullable=False)
    period_key = Column(String(16), nullable=False)
    user_id = Column(Uuid, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    average_response_time = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("period_type", "period_key", "user_id", name="uq_ranking_entries_period_user"),
        Index("idx_ranking_entries_period_score", "period_type", "period_key", "score"),
    )


class AdminAuditLog(Base):
    __tablename__ = "admin_audit_log"
    id = Column(Uuid, primary_key=True, default=uuid7)
    admin_username = Column(String, nullable=False)
    action = Column(String(32), nullable=False)
    target_user_id = Column(Uuid, nullable=True)
    old_value = Column(JsonData, nullable=True)
    new_value = Column(JsonData, nullable=True)
    status = Column(String(16), nullable=False)
    error_message = Column(String, nullable=True)
    idempotency_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_admin_audit_admin_action_created", "admin_username", "action", "created_at"),
    )


class UserTable(Base):
    __tablename__ = "users"
    username = Column(String, primary_key=True, index=True)
    hash_password = Column(String)
    salt = Column(String)
