"""Manual balance corrections by admins, audited and rate limited."""

import logging
from datetime import datetime
from uuid import UUID

from trivia_economy.crud import CreateData, ReadData
from trivia_economy.db import Session, translate_infra_errors
from trivia_economy.domain.economy_rules import admin_manual_key, validate_idempotency_key
from trivia_economy.exceptions import EconomyError, RateLimitExceeded, ValidationError, WalletNotFoundError
from trivia_economy.load_secrets import admin_manual_credit_limit_per_hour
from trivia_economy.models.dc_models import ManualCreditResultModel
from trivia_economy.models.schema_models import AdminManualMetadata
from trivia_economy.models.schemas import utcnow
from trivia_economy.services.ledger import credit

ACTION = "manual_credit"


async def manual_credit(
    admin_username: str,
    target_user_id: UUID,
    delta_coins: int,
    delta_lives: int,
    reason: str,
    idempotency_key: str,
    now: datetime | None = None,
) -> ManualCreditResultModel:
    """Credit (or debit) a user's wallet on behalf of an admin.

    Every attempt that passes the rate limit leaves an audit row: success,
    noop (replayed key) or failed.
    """
    now = now or utcnow()
    reason = (reason or "").strip()
    try:
        if delta_coins == 0 and delta_lives == 0:
            raise ValidationError("delta_coins or delta_lives must be non-zero")
        if not reason:
            raise ValidationError("reason is required")
        key = validate_idempotency_key(admin_manual_key(idempotency_key))

        with translate_infra_errors():
            async with Session() as session:
                async with session.begin():
                    await ReadData.lock_admin_for_update(admin_username, session)
                    recent = await ReadData.count_recent_admin_actions(admin_username, ACTION, now, session)
                    if recent >= admin_manual_credit_limit_per_hour:
                        raise RateLimitExceeded(
                            f"max {admin_manual_credit_limit_per_hour} manual credits per hour"
                        )
                    wallet = await ReadData.read_wallet_for_update(target_user_id, session)
                    if wallet is None:
                        raise WalletNotFoundError(f"wallet not found: {target_user_id}")
                    old_value = {"coins": wallet.coins, "lives": wallet.lives}

                    result = await credit(
                        target_user_id,
                        delta_coins,
                        delta_lives,
                        "admin_manual",
                        key,
                        AdminManualMetadata(admin_username=admin_username, reason=reason),
                        session=session,
                        now=now,
                    )
                    await CreateData.create_admin_audit_log_no_commit(
                        admin_username,
                        ACTION,
                        target_user_id,
                        old_value,
                        {"coins": result.coins, "lives": result.lives, "reason": reason},
                        "success" if result.applied else "noop",
                        None,
                        key,
                        now,
                        session,
                    )
    except RateLimitExceeded:
        logging.warning(f"[Admin] {admin_username} hit the manual credit rate limit")
        raise
    except EconomyError as e:
        await record_failure(admin_username, target_user_id, idempotency_key, str(e), now)
        raise

    logging.info(
        f"[Admin] {admin_username} credited {target_user_id}: coins {delta_coins:+d}, "
        f"lives {delta_lives:+d}, applied={result.applied}"
    )
    return ManualCreditResultModel(
        target_user_id=target_user_id,
        coins=result.coins,
        lives=result.lives,
        applied=result.applied,
    )


async def record_failure(
    admin_username: str, target_user_id: UUID, idempotency_key: str, error_message: str, now: datetime
) -> None:
    logging.error(f"[Admin] Manual credit by {admin_username} for {target_user_id} failed: {error_message}")
    try:
        with translate_infra_errors():
            async with Session() as session:
                async with session.begin():
                    await CreateData.create_admin_audit_log_no_commit(
                        admin_username,
                        ACTION,
                        target_user_id,
                        None,
                        None,
                        "failed",
                        error_message,
                        idempotency_key[:255] if idempotency_key else None,
                        now,
                        session,
                    )
    except EconomyError as e:
        logging.error(f"[Admin] Could not write failure audit row: {e}")
