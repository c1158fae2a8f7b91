"""Passive life regeneration.

The regen clock only ever moves by whole intervals, so the unfinished part of
an interval is kept for the next read. Two readers racing on the same wallet
compute the same boundary; the compare-and-set on last_life_regen_at lets one
of them through and the idempotency key stops any duplicate credit.
"""

import logging
from datetime import datetime
from uuid import UUID

from trivia_economy.crud import ReadData, UpdateData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.economy_rules import compute_regeneration, regen_interval_for, regen_key
from trivia_economy.exceptions import WalletNotFoundError
from trivia_economy.load_secrets import regen_interval_seconds, subscriber_regen_interval_seconds
from trivia_economy.models.schema_models import CreditResult, RegenMetadata
from trivia_economy.models.schemas import utcnow
from trivia_economy.services.ledger import credit


def interval_for_wallet(wallet) -> int:
    return regen_interval_for(wallet.is_subscriber, regen_interval_seconds, subscriber_regen_interval_seconds)


async def regenerate_lives(user_id: UUID, now: datetime | None = None) -> CreditResult | None:
    """Credit the lives owed since last_life_regen_at.

    Returns the credit result, or None when nothing was owed or another
    reader already advanced the clock.
    """
    now = now or utcnow()
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                wallet = await ReadData.read_wallet(user_id, session)
                if wallet is None:
                    raise WalletNotFoundError(f"wallet not found: {user_id}")

                interval = interval_for_wallet(wallet)
                plan = compute_regeneration(
                    wallet.lives, wallet.max_lives, wallet.last_life_regen_at, now, interval
                )
                if plan.lives_to_grant == 0:
                    return None

                advanced = await UpdateData.advance_regen_clock_no_commit(
                    user_id, wallet.last_life_regen_at, plan.boundary, session
                )
                if not advanced:
                    logging.info(f"[Regen] {user_id}: clock already advanced by another reader")
                    return None

                result = await credit(
                    user_id,
                    0,
                    plan.lives_to_grant,
                    "regen",
                    regen_key(user_id, plan.boundary),
                    RegenMetadata(
                        lives_granted=plan.lives_to_grant,
                        interval_seconds=interval,
                        boundary=plan.boundary,
                    ),
                    session=session,
                    now=now,
                )
    logging.info(f"[Regen] {user_id}: +{plan.lives_to_grant} lives, clock at {plan.boundary}")
    return result
