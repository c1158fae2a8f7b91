"""Speed booster tick sweep.

Runs on a schedule over every wallet with an active speed booster. Each tick
is its own ledger credit keyed by the tick timestamp, so a sweep can be killed
and rerun at any point without crediting anything twice.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from trivia_economy.crud import ReadData, UpdateData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.economy_rules import speed_tick_key, tick_timestamp, ticks_due
from trivia_economy.models.schema_models import CreditResult, SpeedTickMetadata, SpeedTickSweepResult
from trivia_economy.models.schemas import Wallet, utcnow
from trivia_economy.services.ledger import credit


async def process_speed_ticks(now: datetime | None = None) -> SpeedTickSweepResult:
    """Credit every tick that is due and deactivate expired boosters.

    A failing user or tick is logged and skipped; the sweep always finishes.
    """
    now = now or utcnow()
    result = SpeedTickSweepResult()

    with translate_infra_errors():
        async with Session() as session:
            user_ids = await ReadData.read_active_speed_wallet_ids(session)
    logging.info(f"[SpeedTicks] Sweep at {now}: {len(user_ids)} active boosters")

    for user_id in user_ids:
        try:
            await process_user_ticks(user_id, now, result)
        except Exception as e:
            result.users_failed += 1
            logging.exception(f"[SpeedTicks] Failed to process {user_id}: {e}")

    logging.info(
        f"[SpeedTicks] Done: processed={result.processed} expired={result.expired} "
        f"credited={result.ticks_credited} failed_ticks={result.ticks_failed} "
        f"failed_users={result.users_failed}"
    )
    return result


async def process_user_ticks(user_id: UUID, now: datetime, result: SpeedTickSweepResult) -> None:
    with translate_infra_errors():
        async with Session() as session:
            wallet = await ReadData.read_wallet(user_id, session)
    if wallet is None or not wallet.speed_booster_active:
        return

    expires_at = wallet.speed_booster_expires_at
    if expires_at is None or now >= expires_at:
        with translate_infra_errors():
            async with Session() as session:
                async with session.begin():
                    deactivated = await UpdateData.deactivate_speed_booster_no_commit(
                        user_id, expires_at, session
                    )
        if deactivated:
            result.expired += 1
            logging.info(f"[SpeedTicks] {user_id}: booster expired at {expires_at}, deactivated")
        return

    anchor = wallet.speed_tick_last_processed_at or wallet.speed_booster_activated_at
    if anchor is None:
        logging.warning(f"[SpeedTicks] {user_id}: active booster without activation time")
        return
    interval = wallet.tick_interval_seconds
    due = ticks_due(anchor, now, interval)
    if due < 1:
        return

    result.processed += 1
    last_good_tick = 0
    first_failure = None
    for tick_number in range(1, due + 1):
        tick_at = tick_timestamp(anchor, tick_number, interval)
        try:
            credited = await credit_tick(wallet, tick_number, tick_at, now)
        except Exception as e:
            result.ticks_failed += 1
            if first_failure is None:
                first_failure = tick_number
            logging.error(f"[SpeedTicks] {user_id}: tick {tick_number} at {tick_at} failed: {e}")
            continue
        if credited.applied:
            result.ticks_credited += 1
        if first_failure is None:
            last_good_tick = tick_number

    if last_good_tick == 0:
        return
    # Stop at the first failure so the next sweep retries from there.
    processed_at = tick_timestamp(anchor, last_good_tick, interval)
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                advanced = await UpdateData.advance_speed_tick_no_commit(
                    user_id, expires_at, processed_at, session
                )
    if not advanced:
        logging.info(f"[SpeedTicks] {user_id}: booster changed during sweep, tick clock left as is")


async def credit_tick(
    wallet: Wallet,
    tick_number: int,
    tick_at: datetime,
    now: datetime,
    session: AsyncSession | None = None,
) -> CreditResult:
    """Credit one tick at the rate the wallet's booster currently pays."""
    return await credit(
        wallet.user_id,
        wallet.speed_coins_per_tick,
        wallet.speed_lives_per_tick,
        "speed_tick",
        speed_tick_key(wallet.user_id, tick_at),
        SpeedTickMetadata(
            multiplier=wallet.speed_booster_multiplier,
            tick_number=tick_number,
            tick_timestamp=tick_at,
        ),
        session=session,
        now=now,
    )


async def settle_due_ticks_no_commit(wallet: Wallet, now: datetime, session: AsyncSession) -> int:
    """Credit every tick due up to now at the running booster's rate.

    Called with the wallet row locked, before the booster's rate changes.
    A failing tick raises and the caller's transaction rolls back.
    """
    anchor = wallet.speed_tick_last_processed_at or wallet.speed_booster_activated_at
    if anchor is None:
        return 0
    interval = wallet.tick_interval_seconds
    due = ticks_due(anchor, now, interval)
    if due < 1:
        return 0

    for tick_number in range(1, due + 1):
        await credit_tick(wallet, tick_number, tick_timestamp(anchor, tick_number, interval), now, session)
    wallet.speed_tick_last_processed_at = tick_timestamp(anchor, due, interval)
    logging.info(f"[SpeedTicks] {wallet.user_id}: settled {due} ticks at x{wallet.speed_booster_multiplier}")
    return due
