"""Mining contracts: creation from approved deposits, active-set selection, expiry and cancellation."""

from datetime import datetime, timedelta

from beanie import PydanticObjectId
from beanie.operators import Set
from pymongo.errors import DuplicateKeyError

from app.core.clock import utcnow
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.deposit import Deposit
from app.models.mining_contract import MiningContract
from app.models.mining_plan import MiningPlan

log = get_logger(__name__)


async def create_contract_for_deposit(
    deposit: Deposit,
    plan: MiningPlan,
    now: datetime | None = None,
) -> MiningContract:
    """Create the contract for an approved deposit. At most one contract exists per deposit."""
    existing = await MiningContract.find_one(MiningContract.deposit_id == deposit.id)
    if existing:
        return existing
    start = now or utcnow()
    contract = MiningContract(
        user_id=deposit.user_id,
        plan_id=plan.id,
        deposit_id=deposit.id,
        start_date=start,
        end_date=start + timedelta(days=plan.contract_period_days),
    )
    try:
        await contract.insert()
    except DuplicateKeyError:
        # Concurrent approval retry won the insert.
        return await MiningContract.find_one(MiningContract.deposit_id == deposit.id)
    log.info(
        "contract_created",
        contract_id=str(contract.id),
        user_id=str(contract.user_id),
        plan_id=str(plan.id),
        end_date=contract.end_date.isoformat(),
    )
    return contract


async def get_contract(contract_id: PydanticObjectId) -> MiningContract:
    contract = await MiningContract.get(contract_id)
    if not contract:
        raise NotFoundError("Mining contract not found")
    return contract


async def active_contracts(now: datetime) -> list[MiningContract]:
    """Contracts eligible for accrual at `now`; evaluated fresh on every call."""
    return await MiningContract.find(
        MiningContract.is_active == True,  # noqa: E712
        MiningContract.end_date >= now,
    ).to_list()


async def list_user_contracts(user_id: PydanticObjectId) -> list[MiningContract]:
    return await MiningContract.find(MiningContract.user_id == user_id).sort(-MiningContract.created_at).to_list()


async def list_user_contracts_with_plans(user_id: PydanticObjectId) -> list[tuple[MiningContract, MiningPlan | None]]:
    contracts = await list_user_contracts(user_id)
    plan_ids = list({c.plan_id for c in contracts})
    plans = {p.id: p for p in await MiningPlan.find({"_id": {"$in": plan_ids}}).to_list()} if plan_ids else {}
    return [(c, plans.get(c.plan_id)) for c in contracts]


async def cancel_contract(contract_id: PydanticObjectId) -> MiningContract:
    """Deactivate immediately; the next tick no longer selects it."""
    contract = await get_contract(contract_id)
    if contract.is_active:
        now = utcnow()
        await MiningContract.find_one(MiningContract.id == contract.id).update(
            Set({MiningContract.is_active: False, MiningContract.cancelled_at: now})
        )
        contract.is_active = False
        contract.cancelled_at = now
        log.info("contract_cancelled", contract_id=str(contract.id))
    return contract


async def expire_contracts(now: datetime | None = None) -> int:
    """
    Settle and deactivate contracts whose end_date has passed. Returns number expired.

    A contract that fails to settle is logged and skipped; the rest of the sweep continues.
    """
    from app.services.accrual import settle_contract

    now = now or utcnow()
    ended = await MiningContract.find(
        MiningContract.is_active == True,  # noqa: E712
        MiningContract.end_date < now,
    ).to_list()
    expired = 0
    for contract in ended:
        try:
            await settle_contract(contract, contract.end_date)
            await MiningContract.find_one(MiningContract.id == contract.id).update(
                Set({MiningContract.is_active: False})
            )
        except Exception as e:
            # Left active; the next sweep retries it.
            log.exception("contract_expire_failed", contract_id=str(contract.id), error=str(e))
            continue
        expired += 1
        log.info("contract_expired", contract_id=str(contract.id), end_date=contract.end_date.isoformat())
    return expired


def contract_out(contract: MiningContract, plan: MiningPlan | None = None) -> dict:
    out = {
        "id": str(contract.id),
        "plan_id": str(contract.plan_id),
        "deposit_id": str(contract.deposit_id),
        "start_date": contract.start_date.isoformat(),
        "end_date": contract.end_date.isoformat(),
        "is_active": contract.is_active,
        "total_earnings": contract.total_earnings,
        "last_accrual_at": contract.last_accrual_at.isoformat() if contract.last_accrual_at else None,
    }
    if plan is not None:
        out["plan"] = {"name": plan.name, "daily_rate": plan.daily_rate, "mining_rate": plan.mining_rate}
    return out
