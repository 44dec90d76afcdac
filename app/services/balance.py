"""Balance aggregation over the earnings ledger and withdrawals."""

from beanie import PydanticObjectId
from pydantic import BaseModel

from app.core.config import get_settings
from app.models.earnings_ledger import EarningsLedgerEntry
from app.models.withdrawal import OPEN_STATUSES, Withdrawal

PLACES = 18


class Balance(BaseModel):
    currency: str
    total_amount: float = 0.0  # sum of ledger credits
    total_usd_value: float = 0.0
    withdrawn: float = 0.0  # completed withdrawals
    pending: float = 0.0  # pending + processing withdrawals
    balance: float = 0.0  # total_amount - withdrawn
    available: float = 0.0  # balance - pending; used for withdrawal admission


async def ledger_totals(user_id: PydanticObjectId) -> tuple[float, float]:
    """(sum of amount, sum of usd_value) over all ledger entries for user, in one aggregate."""
    rows = await EarningsLedgerEntry.find(EarningsLedgerEntry.user_id == user_id).aggregate(
        [{"$group": {"_id": None, "amount": {"$sum": "$amount"}, "usd": {"$sum": "$usd_value"}}}]
    ).to_list()
    if not rows:
        return 0.0, 0.0
    return float(rows[0].get("amount") or 0.0), float(rows[0].get("usd") or 0.0)


async def withdrawal_totals(user_id: PydanticObjectId) -> dict[str, float]:
    """Sum of amount_base per withdrawal status, in one aggregate."""
    rows = await Withdrawal.find(Withdrawal.user_id == user_id).aggregate(
        [{"$group": {"_id": "$status", "amount": {"$sum": "$amount_base"}}}]
    ).to_list()
    return {row["_id"]: float(row.get("amount") or 0.0) for row in rows}


async def get_balance(user_id: PydanticObjectId) -> Balance:
    """Live balance for user. No ledger rows is a zero balance, not an error."""
    # Ledger first: it is append-only, so a write landing between the two reads
    # can only understate `available`.
    total_amount, total_usd = await ledger_totals(user_id)
    by_status = await withdrawal_totals(user_id)
    withdrawn = by_status.get("completed", 0.0)
    pending = sum(by_status.get(s, 0.0) for s in OPEN_STATUSES)
    balance = round(total_amount - withdrawn, PLACES)
    return Balance(
        currency=get_settings().mining_currency,
        total_amount=round(total_amount, PLACES),
        total_usd_value=round(total_usd, PLACES),
        withdrawn=round(withdrawn, PLACES),
        pending=round(pending, PLACES),
        balance=balance,
        available=round(balance - pending, PLACES),
    )


async def list_ledger(
    user_id: PydanticObjectId,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[EarningsLedgerEntry], int]:
    """Ledger entries for user, newest first, with total count."""
    query = EarningsLedgerEntry.find(EarningsLedgerEntry.user_id == user_id)
    total = await query.count()
    entries = await (
        EarningsLedgerEntry.find(EarningsLedgerEntry.user_id == user_id)
        .sort(-EarningsLedgerEntry.timestamp)
        .skip(offset)
        .limit(limit)
        .to_list()
    )
    return entries, total


def ledger_entry_out(e: EarningsLedgerEntry) -> dict:
    return {
        "id": str(e.id),
        "contract_id": str(e.contract_id),
        "timestamp": e.timestamp.isoformat(),
        "period_start": e.period_start.isoformat(),
        "period_end": e.period_end.isoformat(),
        "amount": e.amount,
        "usd_value": e.usd_value,
        "currency": e.currency,
    }
