from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from trivia_economy.authentication.basic_authentication import current_user_id
from trivia_economy.models.dc_models import (
    CheckoutModel,
    CheckoutRequestModel,
    GoldPurchaseModel,
    PremiumActivationResultModel,
    PurchaseResultModel,
    SpeedTokenActivationModel,
    WalletSyncModel,
    WalletViewModel,
)
from trivia_economy.models.schema_models import LedgerEntrySchema, SpeedTokenSchema
from trivia_economy.services import boosters, wallet_sync

wallet_router = APIRouter()


class WalletAPI:
    @staticmethod
    @wallet_router.get("/wallet", response_model=WalletViewModel)
    async def get_wallet(user_id: UUID = Depends(current_user_id)):
        return await wallet_sync.read_wallet_view(user_id)

    @staticmethod
    @wallet_router.get("/wallet/sync", response_model=WalletSyncModel)
    async def sync_wallet(
        request_sent_at_ms: float = Query(ge=0),
        response_received_at_ms: float = Query(ge=0),
        client_now_ms: float = Query(ge=0),
        user_id: UUID = Depends(current_user_id),
    ):
        """Wallet plus the clock drift of the client's previous wallet round trip."""
        view = await wallet_sync.read_wallet_view(user_id)
        return wallet_sync.build_sync_snapshot(view, request_sent_at_ms, response_received_at_ms, client_now_ms)

    @staticmethod
    @wallet_router.get("/wallet/ledger", response_model=List[LedgerEntrySchema])
    async def get_ledger(
        limit: int = Query(default=20, ge=1, le=wallet_sync.LEDGER_PAGE_MAX),
        user_id: UUID = Depends(current_user_id),
    ):
        return await wallet_sync.read_ledger(user_id, limit)


class BoosterAPI:
    @staticmethod
    @wallet_router.post("/boosters/checkout", response_model=CheckoutModel)
    async def checkout(checkout: CheckoutRequestModel, user_id: UUID = Depends(current_user_id)):
        return await boosters.check_card_purchase(user_id, checkout.booster_code.value)

    @staticmethod
    @wallet_router.post("/boosters/purchase", response_model=PurchaseResultModel)
    async def purchase_booster(purchase: GoldPurchaseModel, user_id: UUID = Depends(current_user_id)):
        return await boosters.purchase_with_gold(user_id, purchase.booster_code.value, purchase.request_id)

    @staticmethod
    @wallet_router.post("/boosters/premium/activate", response_model=PremiumActivationResultModel)
    async def activate_premium(user_id: UUID = Depends(current_user_id)):
        return await boosters.activate_premium_booster(user_id)

    @staticmethod
    @wallet_router.post("/speed-tokens/activate", response_model=SpeedTokenSchema)
    async def activate_speed_token(
        activation: SpeedTokenActivationModel | None = None,
        user_id: UUID = Depends(current_user_id),
    ):
        token_id = activation.token_id if activation is not None else None
        return await boosters.activate_speed_token(user_id, token_id)
