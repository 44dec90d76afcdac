"""Deposits: user-submitted payments for a plan, approved or rejected by an admin."""

from beanie import PydanticObjectId
from beanie.operators import Set
from beanie.odm.queries.update import UpdateResponse

from app.core.audit import log_event
from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.core.logging import get_logger
from app.models.deposit import Deposit
from app.models.mining_contract import MiningContract
from app.services import plans as plans_service
from app.services.contracts import create_contract_for_deposit

log = get_logger(__name__)


def payment_addresses() -> dict[str, str]:
    return dict(get_settings().payment_addresses)


async def create_deposit(
    user_id: PydanticObjectId,
    plan_id: PydanticObjectId,
    currency: str,
    crypto_amount: float,
    wallet_address: str,
    transaction_hash: str | None = None,
) -> Deposit:
    plan = await plans_service.get_plan(plan_id)
    if not plan.is_active:
        raise BadRequestError("Mining plan is not available")
    currency = currency.strip().upper()
    if currency not in get_settings().payment_addresses:
        raise BadRequestError(f"Unsupported payment currency: {currency}")
    if crypto_amount <= 0:
        raise BadRequestError("Amount must be positive")
    deposit = Deposit(
        user_id=user_id,
        plan_id=plan.id,
        amount_usd=plan.price,
        currency=currency,
        crypto_amount=crypto_amount,
        wallet_address=wallet_address.strip(),
        transaction_hash=(transaction_hash or "").strip() or None,
    )
    await deposit.insert()
    log.info("deposit_created", deposit_id=str(deposit.id), user_id=str(user_id), plan_id=str(plan.id))
    await log_event(str(user_id), "deposit_created", "deposit", str(deposit.id), {"amount_usd": plan.price})
    return deposit


async def get_deposit(deposit_id: PydanticObjectId) -> Deposit:
    deposit = await Deposit.get(deposit_id)
    if not deposit:
        raise NotFoundError("Deposit not found")
    return deposit


async def approve_deposit(deposit_id: PydanticObjectId, admin_id: str) -> tuple[Deposit, MiningContract]:
    """pending -> approved, then create the contract. Safe to retry: one contract per deposit."""
    now = utcnow()
    deposit = await Deposit.find_one(Deposit.id == deposit_id, Deposit.status == "pending").update(
        Set(
            {
                Deposit.status: "approved",
                Deposit.reviewed_by: admin_id,
                Deposit.reviewed_at: now,
                Deposit.updated_at: now,
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if deposit is None:
        deposit = await get_deposit(deposit_id)
        if deposit.status != "approved":
            raise ConflictError(f"Deposit is {deposit.status}", details={"status": deposit.status})
    else:
        log.info("deposit_approved", deposit_id=str(deposit_id), admin_id=admin_id)
        await log_event(
            admin_id, "deposit_approved", "deposit", str(deposit_id), subject_user_id=str(deposit.user_id)
        )
    plan = await plans_service.get_plan(deposit.plan_id)
    contract = await create_contract_for_deposit(deposit, plan, now)
    return deposit, contract


async def reject_deposit(deposit_id: PydanticObjectId, admin_id: str, reason: str = "") -> Deposit:
    now = utcnow()
    deposit = await Deposit.find_one(Deposit.id == deposit_id, Deposit.status == "pending").update(
        Set(
            {
                Deposit.status: "rejected",
                Deposit.reviewed_by: admin_id,
                Deposit.reviewed_at: now,
                Deposit.rejection_reason: reason or None,
                Deposit.updated_at: now,
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if deposit is None:
        current = await get_deposit(deposit_id)
        if current.status == "rejected":
            return current
        raise ConflictError(f"Deposit is {current.status}", details={"status": current.status})
    log.info("deposit_rejected", deposit_id=str(deposit_id), admin_id=admin_id)
    await log_event(
        admin_id,
        "deposit_rejected",
        "deposit",
        str(deposit_id),
        {"reason": reason},
        subject_user_id=str(deposit.user_id),
    )
    return deposit


async def list_user_deposits(user_id: PydanticObjectId) -> list[Deposit]:
    return await Deposit.find(Deposit.user_id == user_id).sort(-Deposit.created_at).to_list()


async def list_deposits(status: str | None = None) -> list[Deposit]:
    query = Deposit.find(Deposit.status == status) if status else Deposit.find_all()
    return await query.sort(-Deposit.created_at).to_list()


def deposit_out(d: Deposit) -> dict:
    return {
        "id": str(d.id),
        "user_id": str(d.user_id),
        "plan_id": str(d.plan_id),
        "amount_usd": d.amount_usd,
        "currency": d.currency,
        "crypto_amount": d.crypto_amount,
        "wallet_address": d.wallet_address,
        "transaction_hash": d.transaction_hash,
        "status": d.status,
        "rejection_reason": d.rejection_reason,
        "created_at": d.created_at.isoformat(),
    }
