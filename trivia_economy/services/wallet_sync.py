"""Wallet read side.

Reads run the regeneration clock first, so the balances returned already
include every life owed up to now.
"""

import logging
from datetime import datetime
from uuid import UUID

from trivia_economy.crud import CreateData, ReadData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.economy_rules import estimate_server_drift, next_life_at
from trivia_economy.exceptions import WalletNotFoundError
from trivia_economy.load_secrets import (
    default_max_lives,
    initial_coins,
    speed_tick_interval_seconds,
    subscriber_max_lives,
)
from trivia_economy.models.dc_models import WalletSyncModel, WalletViewModel
from trivia_economy.models.schema_models import LedgerEntrySchema, SpeedTokenSchema
from trivia_economy.models.schemas import utcnow
from trivia_economy.services.regeneration import interval_for_wallet, regenerate_lives

LEDGER_PAGE_MAX = 100


async def create_wallet(user_id: UUID, is_subscriber: bool = False, now: datetime | None = None) -> bool:
    """Create a wallet with full lives. Returns False if the user already has one."""
    now = now or utcnow()
    max_lives = subscriber_max_lives if is_subscriber else default_max_lives
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                created = await CreateData.create_wallet_no_commit(
                    user_id,
                    initial_coins,
                    max_lives,
                    max_lives,
                    is_subscriber,
                    speed_tick_interval_seconds,
                    now,
                    session,
                )
    if created:
        logging.info(f"[Wallet] Created wallet for {user_id} (subscriber={is_subscriber})")
    return created


async def read_wallet_view(user_id: UUID, now: datetime | None = None) -> WalletViewModel:
    now = now or utcnow()
    await regenerate_lives(user_id, now)

    with translate_infra_errors():
        async with Session() as session:
            wallet = await ReadData.read_wallet(user_id, session)
            if wallet is None:
                raise WalletNotFoundError(f"wallet not found: {user_id}")
            active = await ReadData.read_active_speed_token(user_id, now, session)
            pending = await ReadData.read_pending_speed_tokens(user_id, session)
            state = await ReadData.read_booster_state(user_id, session)

    interval = interval_for_wallet(wallet)
    return WalletViewModel(
        user_id=wallet.user_id,
        coins=wallet.coins,
        lives=wallet.lives,
        max_lives=wallet.max_lives,
        next_life_at=next_life_at(wallet.lives, wallet.max_lives, wallet.last_life_regen_at, interval),
        regen_interval_seconds=interval,
        server_time=now,
        active_speed_token=SpeedTokenSchema.model_validate(active) if active is not None else None,
        pending_speed_tokens=pending,
        has_pending_premium_booster=bool(state and state.has_pending_premium_booster),
    )


async def read_ledger(user_id: UUID, limit: int = 20) -> list[LedgerEntrySchema]:
    limit = max(1, min(limit, LEDGER_PAGE_MAX))
    with translate_infra_errors():
        async with Session() as session:
            return await ReadData.read_ledger_entries(user_id, limit, session)


def build_sync_snapshot(
    view: WalletViewModel,
    request_sent_at_ms: float,
    response_received_at_ms: float,
    client_now_ms: float,
) -> WalletSyncModel:
    """Bundle a wallet view with the client's clock drift estimate."""
    drift = estimate_server_drift(request_sent_at_ms, response_received_at_ms, client_now_ms)
    return WalletSyncModel(
        wallet=view,
        round_trip_ms=drift.round_trip_ms,
        estimated_server_time_ms=drift.estimated_server_time_ms,
        server_drift_ms=drift.server_drift_ms,
    )
