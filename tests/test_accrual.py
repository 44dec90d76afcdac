"""Accrual job: increment math, idempotency, deactivation and failure isolation."""

from datetime import timedelta

import pytest
from beanie import PydanticObjectId
from beanie.operators import Set

from app.models.earnings_ledger import EarningsLedgerEntry
from app.models.mining_contract import MiningContract
from app.services import accrual
from app.services.accrual import accrual_increment, run_accrual_tick, tick_bucket
from app.services.balance import get_balance
from app.services.contracts import cancel_contract, expire_contracts
from conftest import T0, make_contract

PER_SECOND = 0.00002800 / 86400


def at(seconds: float):
    return T0 + timedelta(seconds=seconds)


async def entries_for(contract):
    return (
        await EarningsLedgerEntry.find(EarningsLedgerEntry.contract_id == contract.id)
        .sort(+EarningsLedgerEntry.period_start)
        .to_list()
    )


def test_accrual_increment_per_second_share():
    assert accrual_increment(0.00002800, 1) == pytest.approx(PER_SECOND, rel=1e-9)
    assert accrual_increment(0.00002800, 86400) == pytest.approx(0.00002800)
    assert accrual_increment(1.0, 3600) == pytest.approx(1 / 24)


def test_accrual_increment_non_positive_inputs():
    assert accrual_increment(0.00002800, 0) == 0.0
    assert accrual_increment(0.00002800, -5) == 0.0
    assert accrual_increment(0.0, 10) == 0.0


def test_tick_bucket_boundaries():
    assert tick_bucket(at(0), 1) + 1 == tick_bucket(at(1), 1)
    assert tick_bucket(at(0.999), 1) == tick_bucket(at(0), 1)
    assert tick_bucket(at(59), 60) == tick_bucket(at(0), 60)
    assert tick_bucket(at(60), 60) == tick_bucket(at(0), 60) + 1


async def test_ten_one_second_ticks(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    for i in range(1, 11):
        result = await run_accrual_tick(at(i), period_seconds=1)
        assert result.credited == 1

    entries = await entries_for(contract)
    assert len(entries) == 10
    for e in entries:
        assert e.amount == pytest.approx(PER_SECOND, rel=1e-9)
    balance = await get_balance(user.id)
    assert balance.total_amount == pytest.approx(10 * PER_SECOND, rel=1e-9)
    assert balance.balance == pytest.approx(10 * PER_SECOND, rel=1e-9)


async def test_entries_are_monotonic_and_chained(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    for i in (1, 2, 4, 7):
        await run_accrual_tick(at(i), period_seconds=1)

    entries = await entries_for(contract)
    timestamps = [e.timestamp for e in entries]
    assert timestamps == sorted(timestamps)
    for prev, nxt in zip(entries, entries[1:]):
        assert nxt.period_start == prev.period_end
    assert entries[0].period_start == T0
    assert entries[-1].period_end == at(7)


async def test_increment_uses_actual_elapsed_time(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    await run_accrual_tick(at(1), period_seconds=1)
    # Process suspended for five seconds.
    await run_accrual_tick(at(6), period_seconds=1)

    entries = await entries_for(contract)
    assert entries[0].amount == pytest.approx(PER_SECOND, rel=1e-9)
    assert entries[1].amount == pytest.approx(5 * PER_SECOND, rel=1e-9)
    refreshed = await MiningContract.get(contract.id)
    assert refreshed.last_accrual_at == at(6)
    assert refreshed.total_earnings == pytest.approx(6 * PER_SECOND, rel=1e-9)


async def test_duplicate_tick_credits_once(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    first = await run_accrual_tick(at(1), period_seconds=1)
    second = await run_accrual_tick(at(1), period_seconds=1)

    assert first.credited == 1
    assert second.credited == 0
    assert second.skipped == 1
    assert len(await entries_for(contract)) == 1


async def test_same_bucket_after_lost_head_credits_once(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    await run_accrual_tick(at(1), period_seconds=1)
    # Simulate a crash between the ledger insert and the head update.
    await MiningContract.find_one(MiningContract.id == contract.id).update(
        Set({MiningContract.last_accrual_at: None})
    )

    result = await run_accrual_tick(at(1.5), period_seconds=1)
    assert result.credited == 0
    assert len(await entries_for(contract)) == 1
    refreshed = await MiningContract.get(contract.id)
    assert refreshed.last_accrual_at == at(1)


async def test_overlapping_window_after_lost_head_is_rejected(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    await run_accrual_tick(at(1), period_seconds=1)
    await MiningContract.find_one(MiningContract.id == contract.id).update(
        Set({MiningContract.last_accrual_at: None})
    )

    # Next bucket, but the window would start at T0 again.
    result = await run_accrual_tick(at(2), period_seconds=1)
    assert result.credited == 0
    await run_accrual_tick(at(3), period_seconds=1)

    entries = await entries_for(contract)
    assert len(entries) == 2
    assert sum(e.amount for e in entries) == pytest.approx(3 * PER_SECOND, rel=1e-9)


async def test_cancelled_contract_stops_accruing(user, pro_plan):
    contract = await make_contract(user.id, pro_plan)
    await run_accrual_tick(at(1), period_seconds=1)
    await cancel_contract(contract.id)

    for i in range(2, 6):
        result = await run_accrual_tick(at(i), period_seconds=1)
        assert result.credited == 0
    assert len(await entries_for(contract)) == 1


async def test_ended_contract_stops_accruing(user, pro_plan):
    contract = await make_contract(user.id, pro_plan, seconds=3)
    for i in range(1, 6):
        await run_accrual_tick(at(i), period_seconds=1)

    entries = await entries_for(contract)
    assert len(entries) == 3
    assert entries[-1].period_end == contract.end_date


async def test_window_is_capped_at_end_date(user, pro_plan):
    contract = await make_contract(user.id, pro_plan, seconds=2.5)
    await run_accrual_tick(at(2), period_seconds=1)
    expired = await expire_contracts(at(10))

    assert expired == 1
    entries = await entries_for(contract)
    assert entries[-1].period_end == contract.end_date
    assert sum(e.amount for e in entries) == pytest.approx(2.5 * PER_SECOND, rel=1e-9)
    refreshed = await MiningContract.get(contract.id)
    assert refreshed.is_active is False


async def test_failing_contract_does_not_block_others(user, pro_plan):
    good = await make_contract(user.id, pro_plan)
    orphan = MiningContract(
        user_id=user.id,
        plan_id=PydanticObjectId(),  # plan does not exist
        deposit_id=PydanticObjectId(),
        start_date=T0,
        end_date=at(86400),
    )
    await orphan.insert()

    result = await run_accrual_tick(at(1), period_seconds=1)
    assert result.failed == 1
    assert result.credited == 1
    assert len(await entries_for(good)) == 1
    assert len(await entries_for(orphan)) == 0


async def test_usd_value_uses_fallback_price(user, pro_plan):
    await make_contract(user.id, pro_plan)
    result = await run_accrual_tick(at(1), period_seconds=1)
    entry = result.entries[0]
    assert entry.usd_value == pytest.approx(entry.amount * 45000, rel=1e-9)


async def test_write_failure_is_isolated(user, pro_plan, monkeypatch):
    first = await make_contract(user.id, pro_plan)
    second = await make_contract(user.id, pro_plan)
    real = accrual._accrue_contract

    async def flaky(contract, now, bucket, ctx):
        if contract.id == first.id:
            raise RuntimeError("write failed")
        return await real(contract, now, bucket, ctx)

    monkeypatch.setattr(accrual, "_accrue_contract", flaky)
    result = await run_accrual_tick(at(1), period_seconds=1)
    assert result.failed == 1
    assert result.credited == 1
    assert len(await entries_for(second)) == 1


async def test_failing_expiry_does_not_block_others(user, pro_plan):
    orphan = MiningContract(
        user_id=user.id,
        plan_id=PydanticObjectId(),  # plan does not exist
        deposit_id=PydanticObjectId(),
        start_date=T0,
        end_date=at(2),
    )
    await orphan.insert()
    good = await make_contract(user.id, pro_plan, seconds=3)

    expired = await expire_contracts(at(10))

    assert expired == 1
    assert (await MiningContract.get(good.id)).is_active is False
    assert (await MiningContract.get(orphan.id)).is_active is True
    entries = await entries_for(good)
    assert entries[-1].period_end == good.end_date
    assert sum(e.amount for e in entries) == pytest.approx(3 * PER_SECOND, rel=1e-9)
