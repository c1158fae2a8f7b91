"""Row-level helpers for the economy tables.

None of these commit. They run inside a transaction owned by a service
(``async with session.begin(): ...``).
"""

from datetime import datetime, timedelta
from typing import List
from uuid import UUID

from sqlalchemy import desc, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from trivia_economy.domain.booster_catalog import SpeedGrant
from trivia_economy.models.schema_models import LedgerEntrySchema, SpeedTokenSchema
from trivia_economy.models.schemas import (
    AdminAuditLog,
    BoosterPendingState,
    LedgerEntry,
    PeriodicAward,
    RankingEntry,
    SpeedToken,
    UserTable,
    Wallet,
)
from uuid6 import uuid7


def dialect_insert(session: AsyncSession, model):
    """INSERT construct that supports ON CONFLICT for the bound backend.

    Values are keyed by column name (wallet_ledger.metadata, not entry_metadata).
    """
    if session.bind.dialect.name == "postgresql":
        return postgresql.insert(model.__table__)
    return sqlite.insert(model.__table__)


class ReadData:
    @staticmethod
    async def read_wallet(user_id: UUID, session: AsyncSession) -> Wallet | None:
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_wallet_for_update(user_id: UUID, session: AsyncSession) -> Wallet | None:
        """Lock the wallet row for the rest of the transaction.

        populate_existing makes sure a wallet already in the identity map is
        refreshed with the locked values.
        """
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_active_speed_wallet_ids(session: AsyncSession) -> List[UUID]:
        stmt = select(Wallet.user_id).where(Wallet.speed_booster_active.is_(True))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_ledger_entries(user_id: UUID, limit: int, session: AsyncSession) -> List[LedgerEntrySchema]:
        """Read the most recent ledger entries of a user, newest first

        Args:
            user_id (UUID): Owner of the wallet
            limit (int): Max number of entries
        """
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.user_id == user_id)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [LedgerEntrySchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_ledger_entry_by_key(idempotency_key: str, session: AsyncSession) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(LedgerEntry.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_speed_token(token_id: UUID, user_id: UUID, session: AsyncSession) -> SpeedToken | None:
        stmt = select(SpeedToken).where(SpeedToken.id == token_id, SpeedToken.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_oldest_pending_speed_token(user_id: UUID, session: AsyncSession) -> SpeedToken | None:
        stmt = (
            select(SpeedToken)
            .where(SpeedToken.user_id == user_id, SpeedToken.used_at.is_(None))
            .order_by(SpeedToken.created_at, SpeedToken.id)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_pending_speed_tokens(user_id: UUID, session: AsyncSession) -> List[SpeedTokenSchema]:
        stmt = (
            select(SpeedToken)
            .where(SpeedToken.user_id == user_id, SpeedToken.used_at.is_(None))
            .order_by(SpeedToken.created_at, SpeedToken.id)
        )
        result = await session.execute(stmt)
        return [SpeedTokenSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_active_speed_token(user_id: UUID, now: datetime, session: AsyncSession) -> SpeedToken | None:
        """Consumed token that has not expired yet. The one lasting longest wins."""
        stmt = (
            select(SpeedToken)
            .where(
                SpeedToken.user_id == user_id,
                SpeedToken.used_at.is_not(None),
                SpeedToken.expires_at > now,
            )
            .order_by(desc(SpeedToken.expires_at))
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_booster_state(user_id: UUID, session: AsyncSession) -> BoosterPendingState | None:
        stmt = select(BoosterPendingState).where(BoosterPendingState.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_periodic_award_exists(
        user_id: UUID, period_type: str, period_key: str, session: AsyncSession
    ) -> bool:
        stmt = select(PeriodicAward.rank).where(
            PeriodicAward.user_id == user_id,
            PeriodicAward.period_type == period_type,
            PeriodicAward.period_key == period_key,
        )
        result = await session.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def read_ranked_users(
        period_type: str, period_key: str, limit: int, session: AsyncSession
    ) -> List[tuple[UUID, int]]:
        """Read the closed ranking of a period as (user_id, rank), rank starting at 1

        Higher score first, faster average response breaks ties.
        """
        stmt = (
            select(RankingEntry.user_id)
            .where(RankingEntry.period_type == period_type, RankingEntry.period_key == period_key)
            .order_by(
                desc(RankingEntry.score),
                RankingEntry.average_response_time.asc().nulls_last(),
                RankingEntry.user_id,
            )
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(user_id, rank) for rank, user_id in enumerate(result.scalars().all(), start=1)]

    @staticmethod
    async def lock_admin_for_update(admin_username: str, session: AsyncSession) -> UserTable | None:
        """Serialize an admin's rate-limited actions on their users row."""
        stmt = select(UserTable).where(UserTable.username == admin_username).with_for_update()
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def count_recent_admin_actions(
        admin_username: str, action: str, now: datetime, session: AsyncSession
    ) -> int:
        stmt = select(func.count(AdminAuditLog.id)).where(
            AdminAuditLog.admin_username == admin_username,
            AdminAuditLog.action == action,
            AdminAuditLog.created_at >= now - timedelta(hours=1),
        )
        result = await session.execute(stmt)
        return result.scalar_one()


class CreateData:
    @staticmethod
    async def create_wallet_no_commit(
        user_id: UUID,
        coins: int,
        lives: int,
        max_lives: int,
        is_subscriber: bool,
        tick_interval_seconds: int,
        now: datetime,
        session: AsyncSession,
    ) -> bool:
        """Insert a wallet unless one exists. Returns True when a row was created."""
        stmt = (
            dialect_insert(session, Wallet)
            .values(
                user_id=user_id,
                coins=coins,
                lives=lives,
                max_lives=max_lives,
                is_subscriber=is_subscriber,
                last_life_regen_at=now,
                speed_booster_active=False,
                speed_booster_multiplier=1,
                speed_coins_per_tick=0,
                speed_lives_per_tick=0,
                tick_interval_seconds=tick_interval_seconds,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
            .returning(Wallet.user_id)
        )
        result = await session.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def insert_ledger_entry_no_commit(
        user_id: UUID,
        delta_coins: int,
        delta_lives: int,
        source: str,
        idempotency_key: str,
        metadata: dict,
        now: datetime,
        session: AsyncSession,
    ) -> UUID | None:
        """Claim an idempotency key.

        Returns the new entry id, or None when the key was already used.
        """
        stmt = (
            dialect_insert(session, LedgerEntry)
            .values(
                id=uuid7(),
                user_id=user_id,
                delta_coins=delta_coins,
                delta_lives=delta_lives,
                source=source,
                idempotency_key=idempotency_key,
                metadata=metadata,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
            .returning(LedgerEntry.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_speed_tokens_no_commit(
        user_id: UUID, grant: SpeedGrant, source: str, now: datetime, session: AsyncSession
    ) -> List[SpeedToken]:
        tokens = [
            SpeedToken(
                id=uuid7(),
                user_id=user_id,
                duration_minutes=grant.duration_minutes,
                multiplier=grant.multiplier,
                source=source,
                created_at=now,
            )
            for _ in range(grant.count)
        ]
        session.add_all(tokens)
        await session.flush()
        return tokens

    @staticmethod
    async def create_periodic_award_no_commit(
        user_id: UUID, period_type: str, period_key: str, rank: int, now: datetime, session: AsyncSession
    ) -> bool:
        stmt = (
            dialect_insert(session, PeriodicAward)
            .values(
                user_id=user_id,
                period_type=period_type,
                period_key=period_key,
                rank=rank,
                awarded_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "period_type", "period_key"])
            .returning(PeriodicAward.rank)
        )
        result = await session.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def upsert_ranking_entry_no_commit(
        period_type: str,
        period_key: str,
        user_id: UUID,
        score: int,
        average_response_time: float | None,
        session: AsyncSession,
    ) -> None:
        """A resent result replaces the stored one."""
        stmt = dialect_insert(session, RankingEntry).values(
            id=uuid7(),
            period_type=period_type,
            period_key=period_key,
            user_id=user_id,
            score=score,
            average_response_time=average_response_time,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["period_type", "period_key", "user_id"],
            set_={
                "score": stmt.excluded.score,
                "average_response_time": stmt.excluded.average_response_time,
            },
        )
        await session.execute(stmt)

    @staticmethod
    async def create_admin_audit_log_no_commit(
        admin_username: str,
        action: str,
        target_user_id: UUID | None,
        old_value: dict | None,
        new_value: dict | None,
        status: str,
        error_message: str | None,
        idempotency_key: str | None,
        now: datetime,
        session: AsyncSession,
    ) -> None:
        session.add(
            AdminAuditLog(
                id=uuid7(),
                admin_username=admin_username,
                action=action,
                target_user_id=target_user_id,
                old_value=old_value,
                new_value=new_value,
                status=status,
                error_message=error_message,
                idempotency_key=idempotency_key,
                created_at=now,
            )
        )
        await session.flush()


class UpdateData:
    @staticmethod
    async def stamp_ledger_balances_no_commit(
        entry_id: UUID, coins_after: int, lives_after: int, session: AsyncSession
    ) -> None:
        stmt = (
            update(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .values(coins_after=coins_after, lives_after=lives_after)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def advance_regen_clock_no_commit(
        user_id: UUID, expected: datetime, boundary: datetime, session: AsyncSession
    ) -> bool:
        """Compare-and-set last_life_regen_at. False means another reader won."""
        stmt = (
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.last_life_regen_at == expected)
            .values(last_life_regen_at=boundary)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def set_pending_premium_no_commit(user_id: UUID, now: datetime, session: AsyncSession) -> bool:
        """Flag a pending premium booster. False when one is already pending."""
        state = await ReadData.read_booster_state(user_id, session)
        if state is None:
            session.add(
                BoosterPendingState(
                    user_id=user_id,
                    has_pending_premium_booster=True,
                    last_premium_purchase_at=now,
                    updated_at=now,
                )
            )
            await session.flush()
            return True
        stmt = (
            update(BoosterPendingState)
            .where(
                BoosterPendingState.user_id == user_id,
                BoosterPendingState.has_pending_premium_booster.is_(False),
            )
            .values(has_pending_premium_booster=True, last_premium_purchase_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def clear_pending_premium_no_commit(user_id: UUID, now: datetime, session: AsyncSession) -> bool:
        stmt = (
            update(BoosterPendingState)
            .where(
                BoosterPendingState.user_id == user_id,
                BoosterPendingState.has_pending_premium_booster.is_(True),
            )
            .values(has_pending_premium_booster=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def consume_speed_token_no_commit(
        token_id: UUID, used_at: datetime, expires_at: datetime, session: AsyncSession
    ) -> bool:
        stmt = (
            update(SpeedToken)
            .where(SpeedToken.id == token_id, SpeedToken.used_at.is_(None))
            .values(used_at=used_at, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def expire_speed_token_no_commit(token_id: UUID, now: datetime, session: AsyncSession) -> None:
        stmt = (
            update(SpeedToken)
            .where(SpeedToken.id == token_id)
            .values(expires_at=now)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def deactivate_speed_booster_no_commit(
        user_id: UUID, expected_expires_at: datetime | None, session: AsyncSession
    ) -> bool:
        """Reset the speed fields unless a newer booster replaced the one we read."""
        stmt = (
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.speed_booster_active.is_(True),
                Wallet.speed_booster_expires_at == expected_expires_at,
            )
            .values(
                speed_booster_active=False,
                speed_booster_multiplier=1,
                speed_booster_activated_at=None,
                speed_booster_expires_at=None,
                speed_tick_last_processed_at=None,
                speed_coins_per_tick=0,
                speed_lives_per_tick=0,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def advance_speed_tick_no_commit(
        user_id: UUID,
        expected_expires_at: datetime | None,
        processed_at: datetime,
        session: AsyncSession,
    ) -> bool:
        stmt = (
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.speed_booster_active.is_(True),
                Wallet.speed_booster_expires_at == expected_expires_at,
            )
            .values(speed_tick_last_processed_at=processed_at)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1
