"""Invitation rewards."""

import logging
from datetime import datetime
from uuid import UUID

from trivia_economy.domain.economy_rules import REFERRAL_REWARD_COINS, referral_key
from trivia_economy.exceptions import ValidationError
from trivia_economy.models.dc_models import ReferralResultModel
from trivia_economy.models.schema_models import ReferralMetadata
from trivia_economy.services.ledger import credit


async def credit_referral(
    inviter_user_id: UUID, invited_user_id: UUID, now: datetime | None = None
) -> ReferralResultModel:
    """Pay the inviter once per invited user."""
    if inviter_user_id == invited_user_id:
        raise ValidationError("a user cannot invite themselves")

    result = await credit(
        inviter_user_id,
        REFERRAL_REWARD_COINS,
        0,
        "referral",
        referral_key(inviter_user_id, invited_user_id),
        ReferralMetadata(referrer_user_id=inviter_user_id, referred_user_id=invited_user_id),
        now=now,
    )
    if result.applied:
        logging.info(f"[Referral] {inviter_user_id} rewarded for inviting {invited_user_id}")
    return ReferralResultModel(inviter_user_id=inviter_user_id, coins=result.coins, applied=result.applied)
