from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import get_current_user, object_id
from app.models.user import User
from app.services import deposits as deposits_service

router = APIRouter()


class DepositCreate(BaseModel):
    plan_id: str
    currency: str
    crypto_amount: float = Field(gt=0)
    wallet_address: str = Field(min_length=1)
    transaction_hash: str | None = None


@router.get("")
async def deposits_list(user: User = Depends(get_current_user)):
    deposits = await deposits_service.list_user_deposits(user.id)
    return {"deposits": [deposits_service.deposit_out(d) for d in deposits]}


@router.post("")
async def deposits_create(body: DepositCreate, user: User = Depends(get_current_user)):
    """Submit a payment for a plan; an admin approves it before mining starts."""
    deposit = await deposits_service.create_deposit(
        user.id,
        object_id(body.plan_id, "Mining plan"),
        body.currency,
        body.crypto_amount,
        body.wallet_address,
        body.transaction_hash,
    )
    return deposits_service.deposit_out(deposit)
