from datetime import timedelta

import pytest

from helpers import T0, get_wallet, ledger_entries, new_wallet, speed_tokens
from trivia_economy.crud import CreateData
from trivia_economy.exceptions import BoosterStateError, InsufficientBalanceError, ValidationError
from trivia_economy.services.boosters import (
    activate_premium_booster,
    activate_speed_token,
    check_card_purchase,
    confirm_payment,
    purchase_with_gold,
)
from trivia_economy.services.speed_ticks import process_speed_ticks
from trivia_economy.services.wallet_sync import read_wallet_view

pytestmark = pytest.mark.usefixtures("database")


async def test_premium_payment_is_granted_once():
    user_id = await new_wallet(coins=100, lives=0)

    first = await confirm_payment(user_id, "PREMIUM", "pi_123", now=T0)
    replay = await confirm_payment(user_id, "PREMIUM", "pi_123", now=T0)

    assert first.applied and first.coins == 1600
    assert not replay.applied and replay.coins == 1600
    wallet = await get_wallet(user_id)
    assert (wallet.coins, wallet.lives) == (1600, 15)
    view = await read_wallet_view(user_id, T0)
    assert view.has_pending_premium_booster


async def test_checkout_is_refused_while_a_premium_is_pending():
    user_id = await new_wallet()
    assert (await check_card_purchase(user_id, "PREMIUM")).price_usd_cents == 249
    await confirm_payment(user_id, "PREMIUM", "pi_1", now=T0)

    with pytest.raises(BoosterStateError) as excinfo:
        await check_card_purchase(user_id, "PREMIUM")

    assert excinfo.value.code == "PENDING_PREMIUM_EXISTS"
    assert (await check_card_purchase(user_id, "SPEED_BOOST")).price_usd_cents == 99
    with pytest.raises(ValidationError):
        await check_card_purchase(user_id, "GOLD_SAVER")


async def test_confirmed_premium_is_granted_even_with_one_pending():
    user_id = await new_wallet()
    await confirm_payment(user_id, "PREMIUM", "pi_1", now=T0)

    second = await confirm_payment(user_id, "PREMIUM", "pi_2", now=T0)
    replay = await confirm_payment(user_id, "PREMIUM", "pi_2", now=T0)

    assert second.applied and second.coins == 3000
    assert second.speed_tokens_granted == 4
    assert not replay.applied and replay.speed_tokens_granted == 0
    tokens = await speed_tokens(user_id)
    assert [(token.duration_minutes, token.multiplier) for token in tokens] == [(60, 4)] * 4
    # the first premium is still waiting for activation
    assert (await read_wallet_view(user_id, T0)).has_pending_premium_booster
    assert (await activate_premium_booster(user_id, now=T0)).tokens_created == 4


async def test_premium_activation_creates_tokens_and_clears_the_flag():
    user_id = await new_wallet()
    await confirm_payment(user_id, "PREMIUM", "pi_1", now=T0)

    result = await activate_premium_booster(user_id, now=T0)

    assert (result.tokens_created, result.duration_minutes, result.multiplier) == (4, 60, 4)
    tokens = await speed_tokens(user_id)
    assert len(tokens) == 4
    assert all(token.used_at is None and token.source == "PREMIUM_BOOSTER" for token in tokens)

    with pytest.raises(BoosterStateError) as excinfo:
        await activate_premium_booster(user_id, now=T0)
    assert excinfo.value.code == "NO_PENDING_PREMIUM"

    # a new premium can be bought once the previous one was used
    assert (await confirm_payment(user_id, "PREMIUM", "pi_2", now=T0)).applied


async def test_nothing_to_activate():
    user_id = await new_wallet()
    with pytest.raises(BoosterStateError) as excinfo:
        await activate_premium_booster(user_id, now=T0)
    assert excinfo.value.code == "NO_PENDING_PREMIUM"


async def test_failed_activation_keeps_the_pending_flag(monkeypatch):
    user_id = await new_wallet()
    await confirm_payment(user_id, "PREMIUM", "pi_1", now=T0)

    async def broken(*args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(CreateData, "create_speed_tokens_no_commit", broken)
    with pytest.raises(RuntimeError):
        await activate_premium_booster(user_id, now=T0)
    monkeypatch.undo()

    assert await speed_tokens(user_id) == []
    assert (await read_wallet_view(user_id, T0)).has_pending_premium_booster
    assert (await activate_premium_booster(user_id, now=T0)).tokens_created == 4


async def test_speed_boost_payment_grants_a_token():
    user_id = await new_wallet()

    result = await confirm_payment(user_id, "SPEED_BOOST", "pi_speed", now=T0)
    await confirm_payment(user_id, "SPEED_BOOST", "pi_speed", now=T0)

    assert result.speed_tokens_granted == 1
    tokens = await speed_tokens(user_id)
    assert [(token.duration_minutes, token.multiplier) for token in tokens] == [(60, 12)]


async def test_card_payment_for_gold_booster_is_rejected():
    user_id = await new_wallet()
    with pytest.raises(ValidationError):
        await confirm_payment(user_id, "FREE", "pi_free", now=T0)
    with pytest.raises(ValidationError):
        await confirm_payment(user_id, "GOLD_SAVER", "pi_saver", now=T0)
    with pytest.raises(BoosterStateError) as excinfo:
        await confirm_payment(user_id, "MYSTERY_BOX", "pi_unknown", now=T0)
    assert excinfo.value.code == "UNKNOWN_BOOSTER"


async def test_gold_purchase():
    user_id = await new_wallet(coins=1000, lives=0)

    result = await purchase_with_gold(user_id, "FREE", "req-1", now=T0)
    replay = await purchase_with_gold(user_id, "FREE", "req-1", now=T0)

    assert result.applied and (result.coins, result.lives) == (400, 15)
    assert result.speed_tokens_granted == 4
    # replaying is fine even though 400 gold would not pay for another booster
    assert not replay.applied and replay.coins == 400
    assert len(await speed_tokens(user_id)) == 4


async def test_gold_saver_purchase():
    user_id = await new_wallet(coins=600, lives=2)

    result = await purchase_with_gold(user_id, "GOLD_SAVER", "req-saver", now=T0)

    assert result.applied and (result.coins, result.lives) == (350, 15)
    assert result.speed_tokens_granted == 0
    assert await speed_tokens(user_id) == []
    entries = await ledger_entries(user_id)
    assert [entry.delta_coins for entry in entries] == [-250]
    assert entries[0].entry_metadata["booster_code"] == "GOLD_SAVER"

    with pytest.raises(InsufficientBalanceError):
        await purchase_with_gold(user_id, "GOLD_SAVER", "req-saver-2", now=T0)
    assert (await get_wallet(user_id)).coins == 350


async def test_gold_purchase_needs_the_full_price():
    user_id = await new_wallet(coins=700)

    with pytest.raises(InsufficientBalanceError) as excinfo:
        await purchase_with_gold(user_id, "FREE", "req-1", now=T0)

    assert excinfo.value.code == "NOT_ENOUGH_GOLD"
    assert (await get_wallet(user_id)).coins == 700
    assert await speed_tokens(user_id) == []


async def test_activate_speed_token_without_tokens():
    user_id = await new_wallet()
    with pytest.raises(BoosterStateError) as excinfo:
        await activate_speed_token(user_id, now=T0)
    assert excinfo.value.code == "NO_PENDING_TOKEN"


async def test_activate_speed_token_starts_the_booster():
    user_id = await new_wallet(coins=900)
    await purchase_with_gold(user_id, "FREE", "req-1", now=T0)

    token = await activate_speed_token(user_id, now=T0)

    assert token.used_at == T0
    assert token.expires_at == T0 + timedelta(minutes=30)
    wallet = await get_wallet(user_id)
    assert wallet.speed_booster_active
    assert wallet.speed_booster_multiplier == 2
    assert wallet.speed_booster_activated_at == T0
    assert wallet.speed_booster_expires_at == T0 + timedelta(minutes=30)
    assert wallet.speed_coins_per_tick == 2
    view = await read_wallet_view(user_id, T0)
    assert view.active_speed_token.id == token.id
    assert len(view.pending_speed_tokens) == 3

    await process_speed_ticks(T0 + timedelta(minutes=5))
    assert (await get_wallet(user_id)).coins == 300 + 5 * 2


async def test_longer_token_supersedes_and_keeps_the_tick_anchor():
    user_id = await new_wallet(coins=900)
    await purchase_with_gold(user_id, "FREE", "req-1", now=T0)
    first = await activate_speed_token(user_id, now=T0)
    later = T0 + timedelta(minutes=10)

    second = await activate_speed_token(user_id, now=later)

    assert second.id != first.id
    tokens = {token.id: token for token in await speed_tokens(user_id)}
    assert tokens[first.id].expires_at == later
    wallet = await get_wallet(user_id)
    assert wallet.speed_booster_expires_at == later + timedelta(minutes=30)
    assert wallet.speed_booster_activated_at == T0
    # ticks earned under the first token are paid before the switch
    assert wallet.coins == 300 + 10 * 2
    assert wallet.speed_tick_last_processed_at == later


async def test_switching_rates_pays_earned_ticks_at_the_old_rate():
    user_id = await new_wallet(coins=900)
    await purchase_with_gold(user_id, "FREE", "req-1", now=T0)
    await activate_speed_token(user_id, now=T0)
    await confirm_payment(user_id, "SPEED_BOOST", "pi_speed", now=T0)
    speed_boost = [token for token in await speed_tokens(user_id) if token.source == "SPEED_BOOST"][0]
    switch_at = T0 + timedelta(minutes=10)

    await activate_speed_token(user_id, speed_boost.id, now=switch_at)
    await process_speed_ticks(switch_at)

    wallet = await get_wallet(user_id)
    assert wallet.coins == 300 + 10 * 2
    assert wallet.speed_coins_per_tick == 12
    ticks = [entry for entry in await ledger_entries(user_id) if entry.source == "speed_tick"]
    assert len(ticks) == 10
    assert {entry.entry_metadata["multiplier"] for entry in ticks} == {2}

    await process_speed_ticks(switch_at + timedelta(minutes=5))
    assert (await get_wallet(user_id)).coins == 300 + 10 * 2 + 5 * 12


async def test_shorter_token_is_refused_while_a_longer_booster_runs():
    user_id = await new_wallet(coins=900)
    await confirm_payment(user_id, "SPEED_BOOST", "pi_speed", now=T0)
    await activate_speed_token(user_id, now=T0)
    await purchase_with_gold(user_id, "FREE", "req-1", now=T0)

    with pytest.raises(BoosterStateError) as excinfo:
        await activate_speed_token(user_id, now=T0 + timedelta(minutes=1))

    assert excinfo.value.code == "SPEED_ALREADY_ACTIVE"
    wallet = await get_wallet(user_id)
    assert wallet.speed_booster_multiplier == 12
    pending = [token for token in await speed_tokens(user_id) if token.used_at is None]
    assert len(pending) == 4
