import logging

from fastapi import APIRouter, Depends, Response, status

from trivia_economy.authentication.basic_authentication import check_payment_secret, check_scheduler_secret
from trivia_economy.models.dc_models import (
    PaymentConfirmationModel,
    PurchaseResultModel,
    RankingUploadModel,
    ReferralModel,
    ReferralResultModel,
    RewardRunModel,
    WalletCreateModel,
)
from trivia_economy.models.schema_models import DistributionResult, SpeedTickSweepResult
from trivia_economy.services import boosters, periodic_rewards, referrals, speed_ticks, wallet_sync

scheduler_router = APIRouter(prefix="/internal", dependencies=[Depends(check_scheduler_secret)])
payment_router = APIRouter(prefix="/internal", dependencies=[Depends(check_payment_secret)])


def _ranked(run: RewardRunModel | None):
    if run is None or run.ranked_users is None:
        return None
    return [(ranked.user_id, ranked.rank) for ranked in run.ranked_users]


class SchedulerAPI:
    @staticmethod
    @scheduler_router.post("/speed-ticks", response_model=SpeedTickSweepResult)
    async def run_speed_ticks():
        return await speed_ticks.process_speed_ticks()

    @staticmethod
    @scheduler_router.post("/rewards/daily", response_model=DistributionResult)
    async def run_daily_rewards(run: RewardRunModel | None = None):
        return await periodic_rewards.run_daily_distribution(
            period_key=run.period_key if run else None, ranked_users=_ranked(run)
        )

    @staticmethod
    @scheduler_router.post("/rewards/weekly", response_model=DistributionResult)
    async def run_weekly_rewards(run: RewardRunModel | None = None):
        return await periodic_rewards.run_weekly_distribution(
            period_key=run.period_key if run else None, ranked_users=_ranked(run)
        )

    @staticmethod
    @scheduler_router.post("/rankings")
    async def record_rankings(upload: RankingUploadModel):
        recorded = await periodic_rewards.record_rankings(
            upload.period_type,
            upload.period_key,
            [(result.user_id, result.score, result.average_response_time) for result in upload.results],
        )
        return {"period_type": upload.period_type, "recorded": recorded}

    @staticmethod
    @scheduler_router.post("/referrals", response_model=ReferralResultModel)
    async def credit_referral(referral: ReferralModel):
        return await referrals.credit_referral(referral.inviter_user_id, referral.invited_user_id)

    @staticmethod
    @scheduler_router.post("/wallets", status_code=status.HTTP_201_CREATED)
    async def create_wallet(wallet: WalletCreateModel, response: Response):
        created = await wallet_sync.create_wallet(wallet.user_id, wallet.is_subscriber)
        if not created:
            response.status_code = status.HTTP_200_OK
        return {"user_id": wallet.user_id, "created": created}


class PaymentAPI:
    @staticmethod
    @payment_router.post("/payments/confirm", response_model=PurchaseResultModel)
    async def confirm_payment(payment: PaymentConfirmationModel):
        logging.info(f"Payment confirmation {payment.transaction_id} for {payment.user_id}")
        return await boosters.confirm_payment(payment.user_id, payment.booster_code.value, payment.transaction_id)
