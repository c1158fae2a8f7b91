from datetime import date, datetime, timedelta

import pytest

from trivia_economy.domain import booster_catalog
from trivia_economy.domain.economy_rules import (
    apply_deltas,
    compute_regeneration,
    daily_prize_table,
    daily_top_limit,
    estimate_server_drift,
    left_full_state,
    next_life_at,
    previous_day,
    previous_week_start,
    reward_key_prefix,
    speed_tick_key,
    tick_timestamp,
    ticks_due,
    validate_idempotency_key,
    week_start,
)
from trivia_economy.exceptions import BoosterStateError, InsufficientBalanceError, InvalidIdempotencyKeyError

T0 = datetime(2024, 5, 6, 12, 0, 0)


def test_regeneration_keeps_the_unfinished_interval():
    plan = compute_regeneration(lives=0, max_lives=5, last_regen_at=T0, now=T0 + timedelta(seconds=1450), interval_seconds=300)
    assert plan.lives_to_grant == 4
    assert plan.boundary == T0 + timedelta(seconds=1200)


def test_regeneration_is_capped_by_max_lives():
    plan = compute_regeneration(lives=3, max_lives=5, last_regen_at=T0, now=T0 + timedelta(hours=5), interval_seconds=300)
    assert plan.lives_to_grant == 2
    assert plan.boundary == T0 + timedelta(seconds=600)


def test_full_wallet_does_not_regenerate():
    plan = compute_regeneration(lives=5, max_lives=5, last_regen_at=T0, now=T0 + timedelta(hours=5), interval_seconds=300)
    assert plan.lives_to_grant == 0
    assert plan.boundary is None


def test_regeneration_before_first_interval():
    plan = compute_regeneration(lives=1, max_lives=5, last_regen_at=T0, now=T0 + timedelta(seconds=299), interval_seconds=300)
    assert plan.lives_to_grant == 0


def test_next_life_at():
    assert next_life_at(2, 5, T0, 300) == T0 + timedelta(seconds=300)
    assert next_life_at(5, 5, T0, 300) is None


def test_apply_deltas_clamps_lives_to_max():
    assert apply_deltas(coins=10, lives=4, max_lives=5, delta_coins=5, delta_lives=3) == (15, 5)


@pytest.mark.parametrize(
    "delta_coins, delta_lives, code",
    [(-11, 0, "NOT_ENOUGH_GOLD"), (0, -5, "NOT_ENOUGH_LIVES")],
)
def test_apply_deltas_rejects_negative_balances(delta_coins, delta_lives, code):
    with pytest.raises(InsufficientBalanceError) as excinfo:
        apply_deltas(coins=10, lives=4, max_lives=5, delta_coins=delta_coins, delta_lives=delta_lives)
    assert excinfo.value.code == code


def test_left_full_state():
    assert left_full_state(5, 4, 5)
    assert not left_full_state(4, 3, 5)
    assert not left_full_state(5, 5, 5)


@pytest.mark.parametrize("key", ["", "has space", "x" * 256, "semi;colon"])
def test_invalid_idempotency_keys(key):
    with pytest.raises(InvalidIdempotencyKeyError):
        validate_idempotency_key(key)


def test_generated_keys_are_valid():
    key = speed_tick_key("0190a7b2-0000-7000-8000-000000000000", T0)
    assert key == "speed_tick:0190a7b2-0000-7000-8000-000000000000:2024-05-06T12:00:00Z"
    assert validate_idempotency_key(key) == key


def test_ticks_due_and_timestamps():
    assert ticks_due(T0, T0 + timedelta(seconds=59), 60) == 0
    assert ticks_due(T0, T0 + timedelta(seconds=185), 60) == 3
    assert tick_timestamp(T0, 3, 60) == T0 + timedelta(seconds=180)


def test_server_drift_estimate():
    drift = estimate_server_drift(request_sent_at_ms=1_000, response_received_at_ms=1_200, client_now_ms=1_250)
    assert drift.round_trip_ms == 200
    assert drift.estimated_server_time_ms == 1_100
    assert drift.server_drift_ms == -150


def test_periods():
    assert previous_day(T0) == date(2024, 5, 5)
    assert week_start(date(2024, 5, 8)) == date(2024, 5, 6)
    assert previous_week_start(T0) == date(2024, 4, 29)


def test_sunday_pays_the_top_25():
    sunday = date(2024, 5, 5)
    saturday = date(2024, 5, 4)
    assert daily_top_limit(sunday) == 25
    assert daily_top_limit(saturday) == 10
    assert len(daily_prize_table(sunday)) == 25
    assert reward_key_prefix("daily", sunday) == "daily-top25"
    assert reward_key_prefix("daily", saturday) == "daily-top10"
    assert reward_key_prefix("weekly", sunday) == "weekly-top10"


def test_booster_catalog():
    free = booster_catalog.get_booster("FREE")
    assert free.paid_with_gold
    assert (free.price_gold, free.reward_gold, free.reward_lives) == (900, 300, 15)
    assert free.speed_tokens == booster_catalog.SpeedGrant(count=4, duration_minutes=30, multiplier=2)
    assert free.token_source == "FREE_BOOSTER"
    assert booster_catalog.PREMIUM.deferred_speed_tokens.count == 4
    assert booster_catalog.SPEED_BOOST.token_source == "SPEED_BOOST"

    with pytest.raises(BoosterStateError) as excinfo:
        booster_catalog.get_booster("GOLD_SAVER")
    assert excinfo.value.code == "UNKNOWN_BOOSTER"
