"""Booster purchase and activation.

Premium boosters move NONE -> PENDING (payment confirmed) -> CONSUMED
(user activates, tokens created). Only one premium waits at a time; the
pending check runs before checkout, and a confirmed payment is never refused. Speed tokens move pending -> used; the
wallet's speed fields mirror the token that lasts longest.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from trivia_economy.crud import CreateData, ReadData, UpdateData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.booster_catalog import PREMIUM, get_booster
from trivia_economy.domain.economy_rules import gold_purchase_key, purchase_key, validate_idempotency_key
from trivia_economy.exceptions import (
    BoosterStateError,
    InsufficientBalanceError,
    ValidationError,
    WalletNotFoundError,
)
from trivia_economy.load_secrets import speed_coins_per_tick, speed_lives_per_tick, speed_tick_interval_seconds
from trivia_economy.models.dc_models import CheckoutModel, PremiumActivationResultModel, PurchaseResultModel
from trivia_economy.models.schema_models import PurchaseMetadata, SpeedTokenSchema
from trivia_economy.models.schemas import utcnow
from trivia_economy.services.ledger import credit
from trivia_economy.services.speed_ticks import settle_due_ticks_no_commit


async def check_card_purchase(user_id: UUID, booster_code: str) -> CheckoutModel:
    """Validate a card purchase before the payment is started."""
    booster = get_booster(booster_code)
    if booster.paid_with_gold:
        raise ValidationError(f"{booster.code} is bought with gold, not by card")
    with translate_infra_errors():
        async with Session() as session:
            wallet = await ReadData.read_wallet(user_id, session)
            if wallet is None:
                raise WalletNotFoundError(f"wallet not found: {user_id}")
            state = await ReadData.read_booster_state(user_id, session)
    if booster.deferred_speed_tokens is not None and state is not None and state.has_pending_premium_booster:
        raise BoosterStateError("PENDING_PREMIUM_EXISTS", "activate the pending premium booster first")
    return CheckoutModel(booster_code=booster.code, price_usd_cents=booster.price_usd_cents)


async def confirm_payment(
    user_id: UUID, booster_code: str, transaction_id: str, now: datetime | None = None
) -> PurchaseResultModel:
    """Grant a card-paid booster once the payment provider confirmed it.

    The transaction id is the idempotency key: a replayed confirmation
    changes nothing and returns the current balances. If a premium booster
    is already pending, the new one's speed tokens are granted right away.
    """
    now = now or utcnow()
    booster = get_booster(booster_code)
    if booster.paid_with_gold:
        raise ValidationError(f"{booster.code} is bought with gold, not by card")
    key = validate_idempotency_key(purchase_key(transaction_id))

    granted = 0
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                result = await credit(
                    user_id,
                    booster.reward_gold,
                    booster.reward_lives,
                    "purchase",
                    key,
                    PurchaseMetadata(
                        booster_code=booster.code,
                        transaction_id=transaction_id,
                        price_usd_cents=booster.price_usd_cents,
                    ),
                    session=session,
                    now=now,
                )
                if result.applied:
                    if booster.deferred_speed_tokens is not None:
                        flagged = await UpdateData.set_pending_premium_no_commit(user_id, now, session)
                        if not flagged:
                            tokens = await CreateData.create_speed_tokens_no_commit(
                                user_id, booster.deferred_speed_tokens, booster.token_source, now, session
                            )
                            granted += len(tokens)
                            logging.warning(
                                f"[Boosters] {user_id}: premium already pending, "
                                f"granted {len(tokens)} tokens for transaction {transaction_id}"
                            )
                    if booster.speed_tokens is not None:
                        tokens = await CreateData.create_speed_tokens_no_commit(
                            user_id, booster.speed_tokens, booster.token_source, now, session
                        )
                        granted += len(tokens)

    if result.applied:
        logging.info(f"[Boosters] {user_id}: {booster.code} granted for transaction {transaction_id}")
    else:
        logging.info(f"[Boosters] {user_id}: transaction {transaction_id} already confirmed")
    return PurchaseResultModel(
        booster_code=booster.code,
        coins=result.coins,
        lives=result.lives,
        applied=result.applied,
        speed_tokens_granted=granted,
    )


async def purchase_with_gold(
    user_id: UUID, booster_code: str, request_id: str, now: datetime | None = None
) -> PurchaseResultModel:
    """Buy a gold-priced booster. The full price must be affordable before rewards."""
    now = now or utcnow()
    booster = get_booster(booster_code)
    if not booster.paid_with_gold:
        raise ValidationError(f"{booster.code} cannot be bought with gold")
    key = validate_idempotency_key(gold_purchase_key(user_id, request_id))

    granted = 0
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                wallet = await ReadData.read_wallet_for_update(user_id, session)
                if wallet is None:
                    raise WalletNotFoundError(f"wallet not found: {user_id}")
                already_applied = await ReadData.read_ledger_entry_by_key(key, session) is not None
                if not already_applied and wallet.coins < booster.price_gold:
                    raise InsufficientBalanceError(
                        f"not enough gold: have {wallet.coins}, need {booster.price_gold}",
                        code="NOT_ENOUGH_GOLD",
                    )
                result = await credit(
                    user_id,
                    booster.reward_gold - booster.price_gold,
                    booster.reward_lives,
                    "purchase",
                    key,
                    PurchaseMetadata(
                        booster_code=booster.code,
                        request_id=request_id,
                        price_gold=booster.price_gold,
                    ),
                    session=session,
                    now=now,
                )
                if result.applied and booster.speed_tokens is not None:
                    tokens = await CreateData.create_speed_tokens_no_commit(
                        user_id, booster.speed_tokens, booster.token_source, now, session
                    )
                    granted = len(tokens)

    logging.info(f"[Boosters] {user_id}: gold purchase {booster.code} applied={result.applied}")
    return PurchaseResultModel(
        booster_code=booster.code,
        coins=result.coins,
        lives=result.lives,
        applied=result.applied,
        speed_tokens_granted=granted,
    )


async def activate_premium_booster(user_id: UUID, now: datetime | None = None) -> PremiumActivationResultModel:
    """Turn the pending premium booster into speed tokens.

    Clearing the flag and creating the tokens commit together; if either
    fails the flag stays set and the user can retry.
    """
    now = now or utcnow()
    grant = PREMIUM.deferred_speed_tokens
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                state = await ReadData.read_booster_state(user_id, session)
                if state is None or not state.has_pending_premium_booster:
                    raise BoosterStateError("NO_PENDING_PREMIUM", "no pending premium booster")
                cleared = await UpdateData.clear_pending_premium_no_commit(user_id, now, session)
                if not cleared:
                    raise BoosterStateError("NO_PENDING_PREMIUM", "premium booster already activated")
                tokens = await CreateData.create_speed_tokens_no_commit(
                    user_id, grant, PREMIUM.token_source, now, session
                )

    logging.info(f"[Boosters] {user_id}: premium booster activated, {len(tokens)} tokens created")
    return PremiumActivationResultModel(
        tokens_created=len(tokens),
        duration_minutes=grant.duration_minutes,
        multiplier=grant.multiplier,
    )


async def activate_speed_token(
    user_id: UUID, token_id: UUID | None = None, now: datetime | None = None
) -> SpeedTokenSchema:
    """Consume a pending speed token and point the wallet's booster at it.

    The booster that ends last wins: a token that would end before the
    running booster is refused and stays pending. Ticks already due under
    the running booster are credited at its rate before the new rate applies.
    """
    now = now or utcnow()
    with translate_infra_errors():
        async with Session() as session:
            async with session.begin():
                wallet = await ReadData.read_wallet_for_update(user_id, session)
                if wallet is None:
                    raise WalletNotFoundError(f"wallet not found: {user_id}")

                if token_id is not None:
                    token = await ReadData.read_speed_token(token_id, user_id, session)
                else:
                    token = await ReadData.read_oldest_pending_speed_token(user_id, session)
                if token is None or token.used_at is not None:
                    raise BoosterStateError("NO_PENDING_TOKEN", "no pending speed token")

                expires_at = now + timedelta(minutes=token.duration_minutes)
                running = (
                    wallet.speed_booster_active
                    and wallet.speed_booster_expires_at is not None
                    and wallet.speed_booster_expires_at > now
                )
                if running and wallet.speed_booster_expires_at > expires_at:
                    raise BoosterStateError(
                        "SPEED_ALREADY_ACTIVE",
                        f"current booster runs until {wallet.speed_booster_expires_at}",
                    )
                superseded = await ReadData.read_active_speed_token(user_id, now, session) if running else None

                consumed = await UpdateData.consume_speed_token_no_commit(token.id, now, expires_at, session)
                if not consumed:
                    raise BoosterStateError("NO_PENDING_TOKEN", "speed token already used")
                if superseded is not None and superseded.id != token.id:
                    await UpdateData.expire_speed_token_no_commit(superseded.id, now, session)

                if running:
                    await settle_due_ticks_no_commit(wallet, now, session)
                else:
                    wallet.speed_booster_activated_at = now
                    wallet.speed_tick_last_processed_at = None
                wallet.speed_booster_active = True
                wallet.speed_booster_multiplier = token.multiplier
                wallet.speed_booster_expires_at = expires_at
                wallet.speed_coins_per_tick = speed_coins_per_tick * token.multiplier
                wallet.speed_lives_per_tick = speed_lives_per_tick
                wallet.tick_interval_seconds = speed_tick_interval_seconds
                wallet.updated_at = now

                await session.refresh(token)
                activated = SpeedTokenSchema.model_validate(token)

    logging.info(
        f"[Boosters] {user_id}: speed token {activated.id} x{activated.multiplier} active until {expires_at}"
    )
    return activated
