"""Ledger credit primitive.

Every coin/life mutation goes through credit(). The unique idempotency key on
wallet_ledger is what makes a logical event apply at most once: the first
insert wins, every later attempt with the same key is a no-op that reports the
current balances.
"""

import logging
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from trivia_economy.crud import CreateData, ReadData, UpdateData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.economy_rules import (
    LEDGER_SOURCES,
    apply_deltas,
    left_full_state,
    validate_idempotency_key,
)
from trivia_economy.exceptions import ValidationError, WalletNotFoundError
from trivia_economy.models.schema_models import CreditResult, ledger_metadata_adapter
from trivia_economy.models.schemas import utcnow


def normalize_metadata(source: str, metadata: BaseModel | dict | None) -> dict:
    """Validate metadata against the typed variant for source and dump it to JSON."""
    if source not in LEDGER_SOURCES:
        raise ValidationError(f"unknown ledger source: {source}")
    if metadata is None:
        return {}
    if isinstance(metadata, dict):
        try:
            metadata = ledger_metadata_adapter.validate_python({"source": source, **metadata})
        except PydanticValidationError as e:
            raise ValidationError(f"invalid metadata for {source}: {e}") from e
    if getattr(metadata, "source", None) != source:
        raise ValidationError(
            f"metadata of type {type(metadata).__name__} does not match source {source}"
        )
    return metadata.model_dump(mode="json")


async def credit(
    user_id: UUID,
    delta_coins: int,
    delta_lives: int,
    source: str,
    idempotency_key: str,
    metadata: BaseModel | dict | None = None,
    *,
    session: AsyncSession | None = None,
    now: datetime | None = None,
) -> CreditResult:
    """Apply a coin/life delta exactly once per idempotency key.

    Args:
        user_id (UUID): Owner of the wallet
        delta_coins (int): May be negative, the result must stay >= 0
        delta_lives (int): May be negative, the result is clamped to max_lives
        source (str): One of LEDGER_SOURCES
        idempotency_key (str): Deterministic key of the logical event
        metadata: Typed metadata for source (or a dict validated against it)
        session (AsyncSession, optional): Join the caller's transaction.
            If this raises, the caller must roll its transaction back.
        now (datetime, optional): Naive UTC time of the event

    Raises:
        InvalidIdempotencyKeyError, ValidationError, InsufficientBalanceError,
        WalletNotFoundError, TransientInfraError

    Returns:
        CreditResult: balances after the call, applied=False on a replayed key
    """
    validate_idempotency_key(idempotency_key)
    payload = normalize_metadata(source, metadata)
    now = now or utcnow()

    with translate_infra_errors():
        if session is not None:
            return await _apply_credit(
                user_id, delta_coins, delta_lives, source, idempotency_key, payload, now, session
            )
        async with Session() as session:
            async with session.begin():
                return await _apply_credit(
                    user_id, delta_coins, delta_lives, source, idempotency_key, payload, now, session
                )


async def _apply_credit(
    user_id: UUID,
    delta_coins: int,
    delta_lives: int,
    source: str,
    idempotency_key: str,
    payload: dict,
    now: datetime,
    session: AsyncSession,
) -> CreditResult:
    wallet = await ReadData.read_wallet_for_update(user_id, session)
    if wallet is None:
        raise WalletNotFoundError(f"wallet not found: {user_id}")

    entry_id = await CreateData.insert_ledger_entry_no_commit(
        user_id, delta_coins, delta_lives, source, idempotency_key, payload, now, session
    )
    if entry_id is None:
        logging.info(f"[Ledger] {idempotency_key} already applied, nothing to do")
        return CreditResult(coins=wallet.coins, lives=wallet.lives, applied=False)

    # Raising here leaves the claimed key inside a transaction that rolls back.
    coins, lives = apply_deltas(wallet.coins, wallet.lives, wallet.max_lives, delta_coins, delta_lives)
    if left_full_state(wallet.lives, lives, wallet.max_lives):
        wallet.last_life_regen_at = now
    wallet.coins = coins
    wallet.lives = lives
    wallet.updated_at = now
    await UpdateData.stamp_ledger_balances_no_commit(entry_id, coins, lives, session)

    logging.info(
        f"[Ledger] {source} {idempotency_key}: coins {delta_coins:+d}, lives {delta_lives:+d} "
        f"-> coins={coins} lives={lives}"
    )
    return CreditResult(coins=coins, lives=lives, applied=True, entry_id=entry_id)
