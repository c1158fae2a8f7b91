from fastapi import APIRouter, Depends

from trivia_economy.authentication.basic_authentication import BasicAuthentication
from trivia_economy.models.basic_authentication_models import AdminUserModel
from trivia_economy.models.dc_models import ManualCreditModel, ManualCreditResultModel
from trivia_economy.services import admin_credit

admin_router = APIRouter(prefix="/admin")
basic_auth = BasicAuthentication()


class AdminAPI:
    @staticmethod
    @admin_router.post("/manual-credit", response_model=ManualCreditResultModel)
    async def manual_credit(
        request: ManualCreditModel,
        admin: AdminUserModel = Depends(basic_auth.check_user_data),
    ):
        return await admin_credit.manual_credit(
            admin.username,
            request.target_user_id,
            request.delta_coins,
            request.delta_lives,
            request.reason,
            request.idempotency_key,
        )
