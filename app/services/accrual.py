"""
Earnings accrual: credit each active contract with its share of the plan's daily rate.

Each tick appends one ledger entry per active contract covering the window from the
contract's last accrual to now. Two unique indexes make the insert idempotent:
(contract_id, bucket) rejects a second credit in the same tick bucket, and
(contract_id, period_start) rejects a second window starting at the same point,
so overlapping or restarted timers can never double-credit.
"""

from dataclasses import dataclass, field
from datetime import datetime

from beanie import PydanticObjectId
from beanie.operators import Inc, LT, Or, Set
from pymongo.errors import DuplicateKeyError

from app.core.clock import epoch_ms, utcnow
from app.core.config import get_settings
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.earnings_ledger import EarningsLedgerEntry
from app.models.mining_contract import MiningContract
from app.models.mining_plan import MiningPlan
from app.services.contracts import active_contracts
from app.services.prices import PriceFeed

log = get_logger(__name__)

SECONDS_PER_DAY = 86400
AMOUNT_PLACES = 18
SETTLEMENT_BUCKET = -1  # closing credit when a contract ends; at most one per contract


def accrual_increment(daily_rate: float, elapsed_seconds: float) -> float:
    """Amount earned over `elapsed_seconds` at `daily_rate` per 24h."""
    if elapsed_seconds <= 0 or daily_rate <= 0:
        return 0.0
    return round(daily_rate * elapsed_seconds / SECONDS_PER_DAY, AMOUNT_PLACES)


def tick_bucket(now: datetime, period_seconds: float) -> int:
    period_ms = max(1, round(period_seconds * 1000))
    return epoch_ms(now) // period_ms


@dataclass
class TickResult:
    bucket: int
    at: datetime
    credited: int = 0
    skipped: int = 0
    failed: int = 0
    amount: float = 0.0
    entries: list[EarningsLedgerEntry] = field(default_factory=list, repr=False)


class _TickContext:
    """Per-tick caches so each plan and rate is resolved once."""

    def __init__(self, feed: PriceFeed):
        self.feed = feed
        self.plans: dict[PydanticObjectId, MiningPlan] = {}
        self.rates: dict[str, float] = {}

    async def plan(self, plan_id: PydanticObjectId) -> MiningPlan:
        if plan_id not in self.plans:
            plan = await MiningPlan.get(plan_id)
            if plan is None:
                raise NotFoundError(f"Mining plan {plan_id} not found")
            self.plans[plan_id] = plan
        return self.plans[plan_id]

    async def usd_rate(self, currency: str) -> float:
        if currency not in self.rates:
            self.rates[currency] = await self.feed.get_price(currency) or 0.0
        return self.rates[currency]


async def _resync_head(contract: MiningContract) -> None:
    """Move last_accrual_at forward to the newest ledger window (after an interrupted tick)."""
    latest = (
        await EarningsLedgerEntry.find(EarningsLedgerEntry.contract_id == contract.id)
        .sort(-EarningsLedgerEntry.period_end)
        .first_or_none()
    )
    if latest is None:
        return
    if contract.last_accrual_at is None or latest.period_end > contract.last_accrual_at:
        await MiningContract.find_one(MiningContract.id == contract.id).update(
            Set({MiningContract.last_accrual_at: latest.period_end})
        )
        log.info("accrual_head_resynced", contract_id=str(contract.id), head=latest.period_end.isoformat())


async def _accrue_contract(
    contract: MiningContract,
    now: datetime,
    bucket: int,
    ctx: _TickContext,
) -> EarningsLedgerEntry | None:
    period_start = contract.accrued_until
    period_end = min(now, contract.end_date)
    elapsed = (period_end - period_start).total_seconds()
    if elapsed <= 0:
        return None
    plan = await ctx.plan(contract.plan_id)
    amount = accrual_increment(plan.daily_rate, elapsed)
    if amount <= 0:
        return None
    rate = await ctx.usd_rate(plan.currency)
    entry = EarningsLedgerEntry(
        contract_id=contract.id,
        user_id=contract.user_id,
        timestamp=now,
        bucket=bucket,
        period_start=period_start,
        period_end=period_end,
        amount=amount,
        usd_value=round(amount * rate, AMOUNT_PLACES),
        currency=plan.currency,
    )
    try:
        await entry.insert()
    except DuplicateKeyError:
        await _resync_head(contract)
        return None

    result = await MiningContract.find_one(
        MiningContract.id == contract.id,
        Or(MiningContract.last_accrual_at == None, LT(MiningContract.last_accrual_at, period_end)),  # noqa: E711
    ).update(
        Set({MiningContract.last_accrual_at: period_end}),
        Inc({MiningContract.total_earnings: amount}),
    )
    if not result or result.modified_count == 0:
        log.warning("accrual_head_not_advanced", contract_id=str(contract.id), period_end=period_end.isoformat())
    return entry


async def settle_contract(contract: MiningContract, until: datetime, price_feed: PriceFeed | None = None) -> float:
    """Credit the remaining window up to `until` (used when a contract ends between ticks)."""
    ctx = _TickContext(price_feed or PriceFeed())
    entry = await _accrue_contract(contract, until, SETTLEMENT_BUCKET, ctx)
    return entry.amount if entry else 0.0


async def run_accrual_tick(
    now: datetime | None = None,
    period_seconds: float | None = None,
    price_feed: PriceFeed | None = None,
) -> TickResult:
    """One accrual pass over all active contracts. Never raises for a single contract's failure."""
    now = now or utcnow()
    period = period_seconds or get_settings().accrual_period_seconds
    bucket = tick_bucket(now, period)
    ctx = _TickContext(price_feed or PriceFeed())
    result = TickResult(bucket=bucket, at=now)

    contracts = await active_contracts(now)
    for contract in contracts:
        try:
            entry = await _accrue_contract(contract, now, bucket, ctx)
        except Exception as e:
            result.failed += 1
            log.exception("accrual_contract_failed", contract_id=str(contract.id), bucket=bucket, error=str(e))
            continue
        if entry is None:
            result.skipped += 1
            continue
        result.credited += 1
        result.amount += entry.amount
        result.entries.append(entry)

    log.debug(
        "accrual_tick",
        bucket=bucket,
        contracts=len(contracts),
        credited=result.credited,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result
