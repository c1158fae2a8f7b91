from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from uuid6 import uuid7

from trivia_economy.db import Session
from trivia_economy.models.schemas import AdminAuditLog, LedgerEntry, SpeedToken, Wallet
from trivia_economy.services.wallet_sync import create_wallet

# A Monday
T0 = datetime(2024, 5, 6, 12, 0, 0)


async def new_wallet(now: datetime = T0, is_subscriber: bool = False, **values) -> UUID:
    user_id = uuid7()
    await create_wallet(user_id, is_subscriber, now)
    if values:
        await set_wallet(user_id, **values)
    return user_id


async def set_wallet(user_id: UUID, **values) -> None:
    async with Session() as session:
        async with session.begin():
            await session.execute(update(Wallet).where(Wallet.user_id == user_id).values(**values))


async def get_wallet(user_id: UUID) -> Wallet:
    async with Session() as session:
        result = await session.execute(select(Wallet).where(Wallet.user_id == user_id))
        return result.scalars().one()


async def ledger_entries(user_id: UUID) -> list[LedgerEntry]:
    async with Session() as session:
        result = await session.execute(
            select(LedgerEntry).where(LedgerEntry.user_id == user_id).order_by(LedgerEntry.created_at, LedgerEntry.id)
        )
        return list(result.scalars().all())


async def speed_tokens(user_id: UUID) -> list[SpeedToken]:
    async with Session() as session:
        result = await session.execute(
            select(SpeedToken).where(SpeedToken.user_id == user_id).order_by(SpeedToken.created_at, SpeedToken.id)
        )
        return list(result.scalars().all())


async def audit_rows(admin_username: str) -> list[AdminAuditLog]:
    async with Session() as session:
        result = await session.execute(
            select(AdminAuditLog).where(AdminAuditLog.admin_username == admin_username).order_by(AdminAuditLog.id)
        )
        return list(result.scalars().all())


async def count_ledger_entries() -> int:
    async with Session() as session:
        result = await session.execute(select(func.count(LedgerEntry.id)))
        return result.scalar_one()
