"""Economy rules that are independent from HTTP and DB.

Everything here takes time as an argument. Callers pass naive UTC datetimes.

Rule of thumb:
- OK: balance arithmetic, regeneration/tick math, idempotency key formats,
  period keys, prize tables.
- Not OK: touching DB sessions, FastAPI, datetime.now(), etc.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from trivia_economy.exceptions import InsufficientBalanceError, InvalidIdempotencyKeyError

IDEMPOTENCY_KEY_MAX_LENGTH = 255
IDEMPOTENCY_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.:+@/\-]+$")

LEDGER_SOURCES = (
    "purchase",
    "speed_tick",
    "regen",
    "weekly_reward",
    "daily_reward",
    "admin_manual",
    "referral",
)

DAILY_TOP_LIMIT = 10
DAILY_JACKPOT_TOP_LIMIT = 25
WEEKLY_TOP_LIMIT = 10

# paid to the inviter once the invited user joins
REFERRAL_REWARD_COINS = 100

# rank -> (gold, lives)
WEEKLY_PRIZE_TABLE = {
    1: (5000, 30),
    2: (3000, 20),
    3: (2000, 15),
    4: (1500, 10),
    5: (1200, 10),
    6: (1000, 8),
    7: (800, 6),
    8: (600, 5),
    9: (500, 4),
    10: (400, 3),
}

DAILY_PRIZE_TABLE = {
    1: (1000, 10),
    2: (700, 8),
    3: (500, 6),
    4: (400, 5),
    5: (300, 4),
    6: (250, 3),
    7: (200, 3),
    8: (150, 2),
    9: (120, 2),
    10: (100, 1),
}

# Sunday jackpot pays the top 25
DAILY_JACKPOT_PRIZE_TABLE = {
    1: (5000, 25),
    2: (3500, 20),
    3: (2500, 15),
    4: (2000, 12),
    5: (1500, 10),
    **{rank: (1000, 8) for rank in range(6, 11)},
    **{rank: (500, 5) for rank in range(11, 21)},
    **{rank: (250, 3) for rank in range(21, 26)},
}


@dataclass(frozen=True)
class RegenerationPlan:
    lives_to_grant: int
    boundary: datetime | None


@dataclass(frozen=True)
class DriftEstimate:
    round_trip_ms: float
    estimated_server_time_ms: float
    server_drift_ms: float


def to_iso(value: datetime) -> str:
    """Render a naive UTC datetime the way idempotency keys expect it."""
    return value.isoformat() + "Z"


def validate_idempotency_key(key: str) -> str:
    if not key or not isinstance(key, str):
        raise InvalidIdempotencyKeyError("idempotency key must be a non-empty string")
    if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise InvalidIdempotencyKeyError(
            f"idempotency key longer than {IDEMPOTENCY_KEY_MAX_LENGTH} characters"
        )
    if not IDEMPOTENCY_KEY_PATTERN.match(key):
        raise InvalidIdempotencyKeyError(f"idempotency key has invalid characters: {key!r}")
    return key


def apply_deltas(
    coins: int,
    lives: int,
    max_lives: int,
    delta_coins: int,
    delta_lives: int,
) -> tuple[int, int]:
    """Return (coins, lives) after the deltas.

    Raises InsufficientBalanceError when either balance would go negative.
    Lives above max_lives are discarded.
    """
    new_coins = coins + delta_coins
    new_lives = lives + delta_lives
    if new_coins < 0:
        raise InsufficientBalanceError(
            f"not enough gold: have {coins}, need {-delta_coins}", code="NOT_ENOUGH_GOLD"
        )
    if new_lives < 0:
        raise InsufficientBalanceError(
            f"not enough lives: have {lives}, need {-delta_lives}", code="NOT_ENOUGH_LIVES"
        )
    return new_coins, min(new_lives, max_lives)


def left_full_state(lives_before: int, lives_after: int, max_lives: int) -> bool:
    return lives_before >= max_lives and lives_after < max_lives


def regen_interval_for(is_subscriber: bool, interval_seconds: int, subscriber_interval_seconds: int) -> int:
    if is_subscriber:
        return subscriber_interval_seconds
    return interval_seconds


def compute_regeneration(
    lives: int,
    max_lives: int,
    last_regen_at: datetime,
    now: datetime,
    interval_seconds: int,
) -> RegenerationPlan:
    """How many lives are owed, and where the regen clock lands afterwards.

    The boundary is last_regen_at plus whole intervals only, so the leftover
    fraction of an interval carries over to the next read.
    """
    if lives >= max_lives or interval_seconds <= 0:
        return RegenerationPlan(0, None)
    elapsed = (now - last_regen_at).total_seconds()
    if elapsed <= 0:
        return RegenerationPlan(0, None)
    lives_to_grant = min(int(elapsed // interval_seconds), max_lives - lives)
    if lives_to_grant <= 0:
        return RegenerationPlan(0, None)
    boundary = last_regen_at + timedelta(seconds=lives_to_grant * interval_seconds)
    return RegenerationPlan(lives_to_grant, boundary)


def next_life_at(
    lives: int,
    max_lives: int,
    last_regen_at: datetime,
    interval_seconds: int,
) -> datetime | None:
    if lives >= max_lives:
        return None
    return last_regen_at + timedelta(seconds=interval_seconds)


def ticks_due(anchor: datetime, now: datetime, interval_seconds: int) -> int:
    if interval_seconds <= 0:
        return 0
    elapsed = (now - anchor).total_seconds()
    if elapsed < interval_seconds:
        return 0
    return int(elapsed // interval_seconds)


def tick_timestamp(anchor: datetime, tick_number: int, interval_seconds: int) -> datetime:
    return anchor + timedelta(seconds=tick_number * interval_seconds)


def estimate_server_drift(
    request_sent_at_ms: float,
    response_received_at_ms: float,
    client_now_ms: float,
) -> DriftEstimate:
    """Estimate how far the server clock is ahead of the client clock.

    The server timestamp is assumed to be taken halfway through the round trip.
    """
    rtt = response_received_at_ms - request_sent_at_ms
    estimated_server_time = response_received_at_ms - rtt / 2
    return DriftEstimate(
        round_trip_ms=rtt,
        estimated_server_time_ms=estimated_server_time,
        server_drift_ms=estimated_server_time - client_now_ms,
    )


# --- idempotency keys ---------------------------------------------------------


def regen_key(user_id: UUID, boundary: datetime) -> str:
    return f"regen:{user_id}:{to_iso(boundary)}"


def speed_tick_key(user_id: UUID, tick_at: datetime) -> str:
    return f"speed_tick:{user_id}:{to_iso(tick_at)}"


def purchase_key(transaction_id: str) -> str:
    return f"purchase:{transaction_id}"


def gold_purchase_key(user_id: UUID, request_id: str) -> str:
    return f"gold_purchase:{user_id}:{request_id}"


def admin_manual_key(idempotency_key: str) -> str:
    return f"admin_manual:{idempotency_key}"


def referral_key(inviter_user_id: UUID, invited_user_id: UUID) -> str:
    return f"invitation:{inviter_user_id}:{invited_user_id}"


def periodic_reward_key(prefix: str, user_id: UUID, period_key: str, rank: int) -> str:
    return f"{prefix}:{user_id}:{period_key}:{rank}"


# --- periods ------------------------------------------------------------------


def day_period_key(day: date) -> str:
    return day.isoformat()


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.weekday())


def previous_day(now: datetime) -> date:
    return (now - timedelta(days=1)).date()


def previous_week_start(now: datetime) -> date:
    return week_start(now.date()) - timedelta(days=7)


def is_jackpot_day(day: date) -> bool:
    return day.weekday() == 6


def daily_top_limit(day: date) -> int:
    if is_jackpot_day(day):
        return DAILY_JACKPOT_TOP_LIMIT
    return DAILY_TOP_LIMIT


def daily_prize_table(day: date) -> dict[int, tuple[int, int]]:
    if is_jackpot_day(day):
        return DAILY_JACKPOT_PRIZE_TABLE
    return DAILY_PRIZE_TABLE


def reward_key_prefix(period_type: str, day: date | None = None) -> str:
    if period_type == "weekly":
        return "weekly-top10"
    if day is not None and is_jackpot_day(day):
        return "daily-top25"
    return "daily-top10"


def reward_source(period_type: str) -> str:
    return "weekly_reward" if period_type == "weekly" else "daily_reward"
