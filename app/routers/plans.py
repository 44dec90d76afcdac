from fastapi import APIRouter

from app.deps import object_id
from app.services import deposits as deposits_service
from app.services import plans as plans_service

router = APIRouter()


@router.get("")
async def plans_list():
    """Active mining plans, cheapest first."""
    plans = await plans_service.list_plans()
    return {"plans": [plans_service.plan_out(p) for p in plans]}


@router.get("/payment-addresses")
async def plans_payment_addresses():
    """Platform receiving addresses per payment currency."""
    return deposits_service.payment_addresses()


@router.get("/{plan_id}")
async def plans_get(plan_id: str):
    plan = await plans_service.get_plan(object_id(plan_id, "Mining plan"))
    return plans_service.plan_out(plan)
