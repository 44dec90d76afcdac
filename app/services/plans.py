"""Mining plan catalog."""

from beanie import PydanticObjectId

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.mining_plan import MiningPlan

log = get_logger(__name__)

DEFAULT_PLANS = [
    {
        "name": "Starter Plan",
        "price": 10,
        "mining_rate": 1.0,
        "daily_rate": 0.00000500,
        "monthly_roi": 15.0,
        "contract_period_days": 365,
        "description": "Perfect for beginners wanting to start their mining journey",
        "features": ["1 MH/s mining power", "Daily BTC earnings", "12-month contract", "Basic support"],
    },
    {
        "name": "Pro Plan",
        "price": 50,
        "mining_rate": 5.0,
        "daily_rate": 0.00002800,
        "monthly_roi": 18.0,
        "contract_period_days": 365,
        "description": "For serious miners looking for better returns",
        "features": ["5 MH/s mining power", "Higher daily earnings", "12-month contract", "Priority support"],
    },
    {
        "name": "Enterprise Plan",
        "price": 200,
        "mining_rate": 20.0,
        "daily_rate": 0.00012500,
        "monthly_roi": 22.0,
        "contract_period_days": 365,
        "description": "Maximum mining power for professional investors",
        "features": ["20 MH/s mining power", "Maximum daily earnings", "12-month contract", "VIP support"],
    },
]


async def list_plans(include_inactive: bool = False) -> list[MiningPlan]:
    query = MiningPlan.find_all() if include_inactive else MiningPlan.find(MiningPlan.is_active == True)  # noqa: E712
    return await query.sort(+MiningPlan.price).to_list()


async def get_plan(plan_id: PydanticObjectId) -> MiningPlan:
    plan = await MiningPlan.get(plan_id)
    if not plan:
        raise NotFoundError("Mining plan not found")
    return plan


async def create_plan(**fields) -> MiningPlan:
    plan = MiningPlan(**fields)
    await plan.insert()
    log.info("plan_created", plan_id=str(plan.id), name=plan.name, daily_rate=plan.daily_rate)
    return plan


async def set_plan_active(plan_id: PydanticObjectId, is_active: bool) -> MiningPlan:
    """Soft (de)activation. Existing contracts keep accruing; only new deposits are affected."""
    plan = await get_plan(plan_id)
    plan.is_active = is_active
    await plan.save()
    log.info("plan_active_changed", plan_id=str(plan.id), is_active=is_active)
    return plan


async def seed_default_plans() -> int:
    """Insert the default catalog when no plans exist. Returns number created."""
    if await MiningPlan.find_all().count() > 0:
        return 0
    for data in DEFAULT_PLANS:
        await MiningPlan(**data).insert()
    log.info("plans_seeded", count=len(DEFAULT_PLANS))
    return len(DEFAULT_PLANS)


def plan_out(plan: MiningPlan) -> dict:
    return {
        "id": str(plan.id),
        "name": plan.name,
        "price": plan.price,
        "mining_rate": plan.mining_rate,
        "daily_rate": plan.daily_rate,
        "monthly_roi": plan.monthly_roi,
        "contract_period_days": plan.contract_period_days,
        "currency": plan.currency,
        "description": plan.description,
        "features": plan.features,
        "is_active": plan.is_active,
    }
