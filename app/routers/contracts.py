from fastapi import APIRouter, Depends

from app.deps import get_current_user
from app.models.user import User
from app.services import contracts as contracts_service

router = APIRouter()


@router.get("")
async def contracts_list(user: User = Depends(get_current_user)):
    """User's mining contracts with plan summary, newest first."""
    rows = await contracts_service.list_user_contracts_with_plans(user.id)
    return {"contracts": [contracts_service.contract_out(c, p) for c, p in rows]}
