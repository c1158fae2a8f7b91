from datetime import timedelta

import pytest

from helpers import T0, audit_rows, get_wallet, ledger_entries, new_wallet
from trivia_economy.authentication.basic_authentication import BasicAuthentication
from trivia_economy.crud import ReadData
from trivia_economy.exceptions import InsufficientBalanceError, RateLimitExceeded, ValidationError
from trivia_economy.services import admin_credit
from trivia_economy.services.admin_credit import manual_credit

pytestmark = pytest.mark.usefixtures("database")


async def test_manual_credit_is_audited():
    user_id = await new_wallet(coins=10, lives=3)

    result = await manual_credit("alice", user_id, 90, 2, "support ticket 42", "ticket-42", now=T0)

    assert result.applied and (result.coins, result.lives) == (100, 5)
    entries = await ledger_entries(user_id)
    assert entries[0].idempotency_key == "admin_manual:ticket-42"
    assert entries[0].entry_metadata == {"source": "admin_manual", "admin_username": "alice", "reason": "support ticket 42"}
    rows = await audit_rows("alice")
    assert len(rows) == 1
    assert rows[0].status == "success"
    assert rows[0].old_value == {"coins": 10, "lives": 3}
    assert rows[0].new_value["coins"] == 100


async def test_replayed_request_is_a_noop():
    user_id = await new_wallet()

    await manual_credit("alice", user_id, 50, 0, "refund", "refund-1", now=T0)
    replay = await manual_credit("alice", user_id, 50, 0, "refund", "refund-1", now=T0)

    assert not replay.applied
    assert (await get_wallet(user_id)).coins == 50
    assert [row.status for row in await audit_rows("alice")] == ["success", "noop"]


@pytest.mark.parametrize(
    "delta_coins, delta_lives, reason",
    [(0, 0, "nothing"), (10, 0, "   ")],
)
async def test_invalid_requests_are_audited_as_failed(delta_coins, delta_lives, reason):
    user_id = await new_wallet()

    with pytest.raises(ValidationError):
        await manual_credit("alice", user_id, delta_coins, delta_lives, reason, "bad-1", now=T0)

    rows = await audit_rows("alice")
    assert [row.status for row in rows] == ["failed"]
    assert rows[0].error_message
    assert (await get_wallet(user_id)).coins == 0


async def test_debit_beyond_balance_fails():
    user_id = await new_wallet(coins=5)

    with pytest.raises(InsufficientBalanceError):
        await manual_credit("alice", user_id, -10, 0, "chargeback", "chargeback-1", now=T0)

    assert (await get_wallet(user_id)).coins == 5
    assert [row.status for row in await audit_rows("alice")] == ["failed"]


async def test_rate_limit_per_admin(monkeypatch):
    monkeypatch.setattr(admin_credit, "admin_manual_credit_limit_per_hour", 2)
    user_id = await new_wallet()

    await manual_credit("alice", user_id, 1, 0, "r", "k-1", now=T0)
    await manual_credit("alice", user_id, 1, 0, "r", "k-2", now=T0 + timedelta(minutes=1))
    with pytest.raises(RateLimitExceeded):
        await manual_credit("alice", user_id, 1, 0, "r", "k-3", now=T0 + timedelta(minutes=2))

    # other admins have their own budget, and the window slides
    assert (await manual_credit("bob", user_id, 1, 0, "r", "k-4", now=T0 + timedelta(minutes=2))).applied
    assert (await manual_credit("alice", user_id, 1, 0, "r", "k-5", now=T0 + timedelta(minutes=61))).applied
    assert (await get_wallet(user_id)).coins == 4


async def test_admin_and_wallet_are_locked_before_reading(monkeypatch):
    await BasicAuthentication().store_user_data("alice", "secret")
    user_id = await new_wallet(coins=10)
    calls = []

    def recording(name):
        real = getattr(ReadData, name)

        async def wrapper(*args, **kwargs):
            calls.append(name)
            return await real(*args, **kwargs)

        return wrapper

    for name in ("lock_admin_for_update", "count_recent_admin_actions", "read_wallet_for_update", "read_wallet"):
        monkeypatch.setattr(ReadData, name, recording(name))

    await manual_credit("alice", user_id, 5, 0, "goodwill", "goodwill-1", now=T0)

    assert calls[:3] == ["lock_admin_for_update", "count_recent_admin_actions", "read_wallet_for_update"]
    assert "read_wallet" not in calls
    assert (await audit_rows("alice"))[0].old_value == {"coins": 10, "lives": 15}
