"""Daily and weekly ranking prizes.

A PeriodicAward row marks a user as paid for a period. The credit and the
award row are written in two steps; if the process dies in between, the next
run repeats the credit (a no-op thanks to its key) and writes the row.
"""

import logging
from datetime import date, datetime
from typing import Iterable
from uuid import UUID

from trivia_economy.crud import CreateData, ReadData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.economy_rules import (
    WEEKLY_PRIZE_TABLE,
    WEEKLY_TOP_LIMIT,
    daily_prize_table,
    daily_top_limit,
    day_period_key,
    periodic_reward_key,
    previous_day,
    previous_week_start,
    reward_key_prefix,
    reward_source,
    week_start,
)
from trivia_economy.exceptions import ValidationError
from trivia_economy.models.schema_models import DistributionResult, PeriodicRewardMetadata
from trivia_economy.models.schemas import utcnow
from trivia_economy.services.ledger import credit

PrizeTable = dict[int, tuple[int, int]]


def parse_period_key(period_key: str) -> date:
    try:
        return date.fromisoformat(period_key)
    except ValueError as e:
        raise ValidationError(f"period key must be YYYY-MM-DD: {period_key!r}") from e


async def distribute_rewards(
    period_type: str,
    period_key: str,
    ranked_users: Iterable[tuple[UUID, int]],
    prize_table: PrizeTable,
    now: datetime | None = None,
) -> DistributionResult:
    """Pay each ranked user their prize for the period, at most once.

    Args:
        period_type (str): "daily" or "weekly"
        period_key (str): Day date or ISO week start (YYYY-MM-DD)
        ranked_users: (user_id, rank) pairs, rank starting at 1
        prize_table (PrizeTable): rank -> (gold, lives)

    Returns:
        DistributionResult: how many users were awarded, skipped or failed
    """
    if period_type not in ("daily", "weekly"):
        raise ValidationError(f"unknown period type: {period_type}")
    now = now or utcnow()
    prefix = reward_key_prefix(period_type, parse_period_key(period_key))
    source = reward_source(period_type)
    result = DistributionResult(period_type=period_type, period_key=period_key)

    for user_id, rank in ranked_users:
        try:
            with translate_infra_errors():
                async with Session() as session:
                    already_awarded = await ReadData.read_periodic_award_exists(
                        user_id, period_type, period_key, session
                    )
            if already_awarded:
                result.skipped += 1
                continue

            prize = prize_table.get(rank)
            if prize is None:
                logging.warning(f"[Rewards] No {period_type} prize configured for rank {rank}, skipping {user_id}")
                result.skipped += 1
                continue
            gold, lives = prize

            await credit(
                user_id,
                gold,
                lives,
                source,
                periodic_reward_key(prefix, user_id, period_key, rank),
                PeriodicRewardMetadata(
                    source=source, period_type=period_type, period_key=period_key, rank=rank
                ),
                now=now,
            )
            with translate_infra_errors():
                async with Session() as session:
                    async with session.begin():
                        await CreateData.create_periodic_award_no_commit(
                            user_id, period_type, period_key, rank, now, session
                        )
            result.awarded += 1
            logging.info(f"[Rewards] {period_type} {period_key}: rank {rank} {user_id} +{gold} gold +{lives} lives")
        except Exception as e:
            result.failed += 1
            logging.exception(f"[Rewards] {period_type} {period_key}: failed to award {user_id} (rank {rank}): {e}")

    logging.info(
        f"[Rewards] {period_type} {period_key} done: awarded={result.awarded} "
        f"skipped={result.skipped} failed={result.failed}"
    )
    return result


async def read_ranked_users(period_type: str, period_key: str, limit: int) -> list[tuple[UUID, int]]:
    with translate_infra_errors():
        async with Session() as session:
            return await ReadData.read_ranked_users(period_type, period_key, limit, session)


async def run_daily_distribution(
    now: datetime | None = None,
    period_key: str | None = None,
    ranked_users: list[tuple[UUID, int]] | None = None,
) -> DistributionResult:
    """Close the previous UTC day. Sundays pay the top 25 jackpot table."""
    now = now or utcnow()
    day = parse_period_key(period_key) if period_key else previous_day(now)
    key = day_period_key(day)
    if ranked_users is None:
        ranked_users = await read_ranked_users("daily", key, daily_top_limit(day))
    return await distribute_rewards("daily", key, ranked_users, daily_prize_table(day), now)


async def run_weekly_distribution(
    now: datetime | None = None,
    period_key: str | None = None,
    ranked_users: list[tuple[UUID, int]] | None = None,
) -> DistributionResult:
    """Close the previous ISO week (Monday start)."""
    now = now or utcnow()
    start = week_start(parse_period_key(period_key)) if period_key else previous_week_start(now)
    key = day_period_key(start)
    if ranked_users is None:
        ranked_users = await read_ranked_users("weekly", key, WEEKLY_TOP_LIMIT)
    return await distribute_rewards("weekly", key, ranked_users, WEEKLY_PRIZE_TABLE, now)


async def record_ranking(
    period_type: str,
    period_key: str,
    user_id: UUID,
    score: int,
    average_response_time: float | None = None,
) -> None:
    """Store one closed-period result."""
    await record_rankings(period_type, period_key, [(user_id, score, average_response_time)])


async def record_rankings(
    period_type: str,
    period_key: str,
    results: Iterable[tuple[UUID, int, float | None]],
) -> int:
    """Store the results of a closed period in one transaction.

    Weekly keys are normalized to the Monday of their week, the key the
    weekly distribution reads.
    """
    if period_type not in ("daily", "weekly"):
        raise ValidationError(f"unknown period type: {period_type!r}")
    day = parse_period_key(period_key)
    key = day_period_key(week_start(day) if period_type == "weekly" else day)

    results = list(results)
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                for user_id, score, average_response_time in results:
                    await CreateData.upsert_ranking_entry_no_commit(
                        period_type, key, user_id, score, average_response_time, session
                    )
    logging.info(f"[Rewards] Recorded {len(results)} {period_type} results for {key}")
    return len(results)
