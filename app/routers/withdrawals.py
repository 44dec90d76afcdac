from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.deps import get_current_user
from app.models.user import User
from app.services import withdrawals as withdrawals_service

router = APIRouter()


class WithdrawalCreate(BaseModel):
    amount: float = Field(gt=0)
    currency: str = "BTC"
    wallet_address: str = Field(min_length=1)


@router.get("")
async def withdrawals_list(user: User = Depends(get_current_user)):
    items = await withdrawals_service.list_user_withdrawals(user.id)
    return {"withdrawals": [withdrawals_service.withdrawal_out(w) for w in items]}


@router.get("/currencies")
async def withdrawals_currencies():
    return {"currencies": get_settings().withdrawal_currencies}


@router.post("")
async def withdrawals_create(body: WithdrawalCreate, user: User = Depends(get_current_user)):
    """Request a withdrawal. Rejected with INSUFFICIENT_BALANCE if it exceeds the available balance."""
    w = await withdrawals_service.request_withdrawal(user.id, body.amount, body.currency, body.wallet_address)
    return withdrawals_service.withdrawal_out(w)
