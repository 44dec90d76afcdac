from fastapi import APIRouter, Depends, Query

from app.core.pagination import page_of, paginate
from app.deps import get_current_user
from app.models.user import User
from app.services import balance as balance_service

router = APIRouter()


@router.get("/balance")
async def earnings_balance(user: User = Depends(get_current_user)):
    """Live balance: ledger credits net of completed and open withdrawals."""
    balance = await balance_service.get_balance(user.id)
    return balance.model_dump()


@router.get("/ledger")
async def earnings_ledger(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Ledger entries for current user (newest first)."""
    limit, offset = paginate(limit, offset)
    entries, total = await balance_service.list_ledger(user.id, limit=limit, offset=offset)
    return page_of([balance_service.ledger_entry_out(e) for e in entries], limit, offset, total)


@router.get("")
async def earnings_summary(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
):
    """Recent entries plus totals in one response."""
    entries, _ = await balance_service.list_ledger(user.id, limit=limit)
    balance = await balance_service.get_balance(user.id)
    return {
        "earnings": [balance_service.ledger_entry_out(e) for e in entries],
        "totals": {"total_amount": balance.total_amount, "total_usd_value": balance.total_usd_value},
    }
