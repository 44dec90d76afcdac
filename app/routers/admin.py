from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.audit import list_events_for_user, log_event
from app.deps import object_id, require_admin
from app.models.user import User
from app.services import contracts as contracts_service
from app.services import deposits as deposits_service
from app.services import plans as plans_service
from app.services import stats as stats_service
from app.services import withdrawals as withdrawals_service

router = APIRouter()


class RejectRequest(BaseModel):
    reason: str = ""


class CompleteWithdrawalRequest(BaseModel):
    transaction_hash: str = Field(min_length=1)
    network_fee: float | None = Field(default=None, ge=0)


class PlanCreate(BaseModel):
    name: str
    price: float = Field(gt=0)
    mining_rate: float = Field(ge=0)
    daily_rate: float = Field(gt=0)
    monthly_roi: float = 0.0
    contract_period_days: int = Field(gt=0)
    currency: str = "BTC"
    description: str = ""
    features: list[str] = []


class PlanActive(BaseModel):
    is_active: bool


@router.get("/stats")
async def admin_stats(user: User = Depends(require_admin)):
    return await stats_service.admin_stats()


# Deposits

@router.get("/deposits")
async def admin_deposits(
    user: User = Depends(require_admin),
    status: Literal["pending", "approved", "rejected", "all"] = Query("pending"),
):
    deposits = await deposits_service.list_deposits(None if status == "all" else status)
    return {"deposits": [deposits_service.deposit_out(d) for d in deposits]}


@router.post("/deposits/{deposit_id}/approve")
async def admin_deposit_approve(deposit_id: str, user: User = Depends(require_admin)):
    """Approve a deposit and start its mining contract. Retrying is safe."""
    deposit, contract = await deposits_service.approve_deposit(object_id(deposit_id, "Deposit"), str(user.id))
    return {
        "deposit": deposits_service.deposit_out(deposit),
        "contract": contracts_service.contract_out(contract),
    }


@router.post("/deposits/{deposit_id}/reject")
async def admin_deposit_reject(deposit_id: str, body: RejectRequest, user: User = Depends(require_admin)):
    deposit = await deposits_service.reject_deposit(object_id(deposit_id, "Deposit"), str(user.id), body.reason)
    return deposits_service.deposit_out(deposit)


# Withdrawals

@router.get("/withdrawals")
async def admin_withdrawals(user: User = Depends(require_admin)):
    """Open (pending or processing) withdrawals."""
    items = await withdrawals_service.list_open_withdrawals()
    return {"withdrawals": [withdrawals_service.withdrawal_out(w) | {"user_id": str(w.user_id)} for w in items]}


@router.post("/withdrawals/{withdrawal_id}/processing")
async def admin_withdrawal_processing(withdrawal_id: str, user: User = Depends(require_admin)):
    w = await withdrawals_service.mark_processing(object_id(withdrawal_id, "Withdrawal"), str(user.id))
    return withdrawals_service.withdrawal_out(w)


@router.post("/withdrawals/{withdrawal_id}/complete")
async def admin_withdrawal_complete(
    withdrawal_id: str,
    body: CompleteWithdrawalRequest,
    user: User = Depends(require_admin),
):
    """Mark paid out. The balance decreases exactly once even if this is retried."""
    w = await withdrawals_service.complete_withdrawal(
        object_id(withdrawal_id, "Withdrawal"),
        str(user.id),
        body.transaction_hash,
        body.network_fee,
    )
    return withdrawals_service.withdrawal_out(w)


@router.post("/withdrawals/{withdrawal_id}/reject")
async def admin_withdrawal_reject(withdrawal_id: str, body: RejectRequest, user: User = Depends(require_admin)):
    w = await withdrawals_service.reject_withdrawal(object_id(withdrawal_id, "Withdrawal"), str(user.id), body.reason)
    return withdrawals_service.withdrawal_out(w)


@router.get("/users/{user_id}/audit")
async def admin_user_audit(user_id: str, user: User = Depends(require_admin), limit: int = Query(50, ge=1, le=200)):
    """Recent audit events touching a user (deposits, withdrawals, contracts)."""
    events = await list_events_for_user(str(object_id(user_id, "User")), limit=limit)
    return {
        "events": [
            {
                "actor_id": e.actor_id,
                "event_type": e.event_type,
                "entity_type": e.entity_type,
                "entity_id": e.entity_id,
                "metadata": e.metadata,
                "created_at": e.created_at.isoformat(),
            }
            for e in events
        ]
    }

# Plans and contracts

@router.get("/plans")
async def admin_plans(user: User = Depends(require_admin)):
    plans = await plans_service.list_plans(include_inactive=True)
    return {"plans": [plans_service.plan_out(p) for p in plans]}


@router.post("/plans")
async def admin_plan_create(body: PlanCreate, user: User = Depends(require_admin)):
    plan = await plans_service.create_plan(**body.model_dump())
    await log_event(str(user.id), "plan_created", "plan", str(plan.id), {"name": plan.name})
    return plans_service.plan_out(plan)


@router.post("/plans/{plan_id}/active")
async def admin_plan_active(plan_id: str, body: PlanActive, user: User = Depends(require_admin)):
    plan = await plans_service.set_plan_active(object_id(plan_id, "Mining plan"), body.is_active)
    await log_event(str(user.id), "plan_active_changed", "plan", str(plan.id), {"is_active": body.is_active})
    return plans_service.plan_out(plan)


@router.post("/contracts/{contract_id}/cancel")
async def admin_contract_cancel(contract_id: str, user: User = Depends(require_admin)):
    """Stop accrual for a contract from the next tick on."""
    contract = await contracts_service.cancel_contract(object_id(contract_id, "Mining contract"))
    await log_event(
        str(user.id), "contract_cancelled", "contract", str(contract.id), subject_user_id=str(contract.user_id)
    )
    return contracts_service.contract_out(contract)
