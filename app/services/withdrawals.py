"""
Withdrawal gate and admin processing.

Admission: the requested amount is converted to the mining currency and checked
against the available balance (ledger credits minus completed and open
withdrawals). Requests for one user are serialised by a short lease on the user's
WithdrawalGuard: only the lease holder reads the balance and inserts its pending
row, so two requests can never both spend the same balance and a refused request
never leaves a row behind. A request that finds the lease held backs off and
retries, then gives up with ConflictError.

Processing: status moves pending -> processing -> completed|rejected through
conditional updates; completion is the only transition that lowers the balance and
retrying it is a no-op.
"""

import asyncio
import uuid
from datetime import timedelta

from beanie import PydanticObjectId
from beanie.operators import In, Inc, LT, Or, Set
from beanie.odm.queries.update import UpdateResponse
from pymongo.errors import DuplicateKeyError

from app.core.audit import log_event
from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, ConflictError, InsufficientBalanceError, NotFoundError
from app.core.logging import get_logger
from app.models.withdrawal import OPEN_STATUSES, Withdrawal
from app.models.withdrawal_guard import WithdrawalGuard
from app.services.balance import get_balance
from app.services.prices import PriceFeed

log = get_logger(__name__)

PLACES = 18


async def _ensure_guard(user_id: PydanticObjectId) -> None:
    if await WithdrawalGuard.find_one(WithdrawalGuard.user_id == user_id):
        return
    try:
        await WithdrawalGuard(user_id=user_id).insert()
    except DuplicateKeyError:
        pass  # created by a concurrent request


async def _acquire_guard(user_id: PydanticObjectId, token: str) -> bool:
    """Take the user's lease if it is free or expired."""
    now = utcnow()
    result = await WithdrawalGuard.find_one(
        WithdrawalGuard.user_id == user_id,
        Or(WithdrawalGuard.holder == None, LT(WithdrawalGuard.locked_until, now)),  # noqa: E711
    ).update(
        Set(
            {
                WithdrawalGuard.holder: token,
                WithdrawalGuard.locked_until: now + timedelta(seconds=get_settings().withdrawal_lock_seconds),
            }
        ),
        Inc({WithdrawalGuard.version: 1}),
    )
    return bool(result and result.modified_count == 1)


async def _release_guard(user_id: PydanticObjectId, token: str) -> None:
    await WithdrawalGuard.find_one(
        WithdrawalGuard.user_id == user_id,
        WithdrawalGuard.holder == token,
    ).update(Set({WithdrawalGuard.holder: None, WithdrawalGuard.locked_until: None}))


async def _admit(
    user_id: PydanticObjectId,
    amount: float,
    currency: str,
    amount_base: float,
    rate: float,
    wallet_address: str,
) -> Withdrawal:
    """Balance check and insert. Caller holds the user's lease."""
    balance = await get_balance(user_id)
    if amount_base > balance.available:
        log.info(
            "withdrawal_rejected_insufficient",
            user_id=str(user_id),
            amount_base=amount_base,
            available=balance.available,
        )
        raise InsufficientBalanceError(
            details={
                "requested": amount,
                "currency": currency,
                "requested_base": amount_base,
                "available": balance.available,
                "base_currency": balance.currency,
            }
        )
    withdrawal = Withdrawal(
        user_id=user_id,
        amount=amount,
        currency=currency,
        amount_base=amount_base,
        rate=rate,
        wallet_address=wallet_address,
    )
    await withdrawal.insert()
    return withdrawal


async def request_withdrawal(
    user_id: PydanticObjectId,
    amount: float,
    currency: str,
    wallet_address: str,
    price_feed: PriceFeed | None = None,
) -> Withdrawal:
    """Admit a withdrawal as pending, or raise InsufficientBalanceError with no state change."""
    settings = get_settings()
    currency = currency.strip().upper()
    wallet_address = wallet_address.strip()
    if currency not in settings.withdrawal_currencies:
        raise BadRequestError(f"Unsupported withdrawal currency: {currency}")
    if amount <= 0:
        raise BadRequestError("Amount must be positive")
    if not wallet_address:
        raise BadRequestError("Wallet address required")

    feed = price_feed or PriceFeed()
    rate = await feed.conversion_rate(currency, settings.mining_currency)
    amount_base = round(amount * rate, PLACES)

    await _ensure_guard(user_id)
    token = uuid.uuid4().hex
    for attempt in range(settings.withdrawal_conflict_retries):
        if not await _acquire_guard(user_id, token):
            log.info("withdrawal_guard_busy", user_id=str(user_id), attempt=attempt + 1)
            await asyncio.sleep(settings.withdrawal_retry_delay_seconds * (attempt + 1))
            continue
        try:
            withdrawal = await _admit(user_id, amount, currency, amount_base, rate, wallet_address)
        finally:
            await _release_guard(user_id, token)
        log.info(
            "withdrawal_requested",
            withdrawal_id=str(withdrawal.id),
            user_id=str(user_id),
            amount=amount,
            currency=currency,
            amount_base=amount_base,
        )
        await log_event(
            str(user_id),
            "withdrawal_requested",
            "withdrawal",
            str(withdrawal.id),
            {"amount": amount, "currency": currency, "amount_base": amount_base},
        )
        return withdrawal

    raise ConflictError("Concurrent withdrawal in progress, please retry")


async def get_withdrawal(withdrawal_id: PydanticObjectId) -> Withdrawal:
    w = await Withdrawal.get(withdrawal_id)
    if not w:
        raise NotFoundError("Withdrawal not found")
    return w


async def mark_processing(withdrawal_id: PydanticObjectId, admin_id: str) -> Withdrawal:
    updated = await Withdrawal.find_one(
        Withdrawal.id == withdrawal_id,
        Withdrawal.status == "pending",
    ).update(
        Set({Withdrawal.status: "processing", Withdrawal.processed_by: admin_id, Withdrawal.updated_at: utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated:
        log.info("withdrawal_processing", withdrawal_id=str(withdrawal_id), admin_id=admin_id)
        await log_event(
            admin_id, "withdrawal_processing", "withdrawal", str(withdrawal_id), subject_user_id=str(updated.user_id)
        )
        return updated
    current = await get_withdrawal(withdrawal_id)
    if current.status == "processing":
        return current
    raise ConflictError(f"Withdrawal is {current.status}", details={"status": current.status})


async def complete_withdrawal(
    withdrawal_id: PydanticObjectId,
    admin_id: str,
    transaction_hash: str,
    network_fee: float | None = None,
) -> Withdrawal:
    """Atomically move an open withdrawal to completed. A retried completion returns the completed row."""
    if not transaction_hash or not transaction_hash.strip():
        raise BadRequestError("Transaction hash required")
    now = utcnow()
    updated = await Withdrawal.find_one(
        Withdrawal.id == withdrawal_id,
        In(Withdrawal.status, list(OPEN_STATUSES)),
    ).update(
        Set(
            {
                Withdrawal.status: "completed",
                Withdrawal.transaction_hash: transaction_hash.strip(),
                Withdrawal.network_fee: network_fee or 0.0,
                Withdrawal.processed_at: now,
                Withdrawal.processed_by: admin_id,
                Withdrawal.updated_at: now,
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated:
        log.info(
            "withdrawal_completed",
            withdrawal_id=str(withdrawal_id),
            user_id=str(updated.user_id),
            amount_base=updated.amount_base,
            admin_id=admin_id,
        )
        await log_event(
            admin_id,
            "withdrawal_completed",
            "withdrawal",
            str(withdrawal_id),
            {"transaction_hash": updated.transaction_hash, "amount_base": updated.amount_base},
            subject_user_id=str(updated.user_id),
        )
        return updated
    current = await get_withdrawal(withdrawal_id)
    if current.status == "completed":
        log.info("withdrawal_complete_retried", withdrawal_id=str(withdrawal_id))
        return current
    raise ConflictError(f"Withdrawal is {current.status}", details={"status": current.status})


async def reject_withdrawal(withdrawal_id: PydanticObjectId, admin_id: str, reason: str = "") -> Withdrawal:
    """Reject an open withdrawal; its reserved amount becomes available again."""
    now = utcnow()
    updated = await Withdrawal.find_one(
        Withdrawal.id == withdrawal_id,
        In(Withdrawal.status, list(OPEN_STATUSES)),
    ).update(
        Set(
            {
                Withdrawal.status: "rejected",
                Withdrawal.rejection_reason: reason or None,
                Withdrawal.processed_at: now,
                Withdrawal.processed_by: admin_id,
                Withdrawal.updated_at: now,
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated:
        log.info("withdrawal_rejected", withdrawal_id=str(withdrawal_id), admin_id=admin_id)
        await log_event(
            admin_id,
            "withdrawal_rejected",
            "withdrawal",
            str(withdrawal_id),
            {"reason": reason},
            subject_user_id=str(updated.user_id),
        )
        return updated
    current = await get_withdrawal(withdrawal_id)
    if current.status == "rejected":
        return current
    raise ConflictError(f"Withdrawal is {current.status}", details={"status": current.status})


async def list_user_withdrawals(user_id: PydanticObjectId) -> list[Withdrawal]:
    return await Withdrawal.find(Withdrawal.user_id == user_id).sort(-Withdrawal.created_at).to_list()


async def list_open_withdrawals() -> list[Withdrawal]:
    return await Withdrawal.find(In(Withdrawal.status, list(OPEN_STATUSES))).sort(-Withdrawal.created_at).to_list()


def withdrawal_out(w: Withdrawal) -> dict:
    return {
        "id": str(w.id),
        "amount": w.amount,
        "currency": w.currency,
        "amount_base": w.amount_base,
        "wallet_address": w.wallet_address,
        "status": w.status,
        "transaction_hash": w.transaction_hash,
        "network_fee": w.network_fee,
        "processed_at": w.processed_at.isoformat() if w.processed_at else None,
        "rejection_reason": w.rejection_reason,
        "created_at": w.created_at.isoformat(),
    }
