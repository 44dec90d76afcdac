"""Unit tests for the balance aggregator (in-memory DB)."""

import pytest

from app.models.withdrawal import Withdrawal
from app.services import balance as balance_service
from conftest import credit


async def _withdrawal(user_id, amount, status):
    w = Withdrawal(
        user_id=user_id,
        amount=amount,
        currency="BTC",
        amount_base=amount,
        wallet_address="bc1qtest",
        status=status,
    )
    await w.insert()
    return w


async def test_get_balance_empty(user):
    balance = await balance_service.get_balance(user.id)
    assert balance.total_amount == 0
    assert balance.total_usd_value == 0
    assert balance.balance == 0
    assert balance.available == 0
    assert balance.currency == "BTC"


async def test_balance_sums_ledger(user, admin):
    await credit(user.id, 0.003)
    await credit(user.id, 0.002)
    await credit(admin.id, 1.0)  # other users never leak in

    balance = await balance_service.get_balance(user.id)
    assert balance.total_amount == pytest.approx(0.005)
    assert balance.total_usd_value == pytest.approx(0.005 * 45000)
    assert balance.balance == pytest.approx(0.005)


async def test_balance_nets_withdrawals_by_status(user):
    await credit(user.id, 0.010)
    await _withdrawal(user.id, 0.002, "completed")
    await _withdrawal(user.id, 0.001, "pending")
    await _withdrawal(user.id, 0.0015, "processing")
    await _withdrawal(user.id, 0.004, "rejected")

    balance = await balance_service.get_balance(user.id)
    assert balance.withdrawn == pytest.approx(0.002)
    assert balance.pending == pytest.approx(0.0025)
    assert balance.balance == pytest.approx(0.008)
    assert balance.available == pytest.approx(0.0055)


async def test_list_ledger_newest_first(user):
    from datetime import timedelta
    from conftest import T0

    for i in range(5):
        await credit(user.id, 0.001, at=T0 + timedelta(seconds=i))
    entries, total = await balance_service.list_ledger(user.id, limit=2, offset=1)
    assert total == 5
    assert [e.timestamp for e in entries] == [T0 + timedelta(seconds=3), T0 + timedelta(seconds=2)]


async def test_credit_between_reads_only_understates(user, monkeypatch):
    from datetime import timedelta
    from conftest import T0

    await credit(user.id, 0.005)
    real_ledger_totals = balance_service.ledger_totals

    async def ledger_then_credit(user_id):
        totals = await real_ledger_totals(user_id)
        await credit(user_id, 0.002, at=T0 + timedelta(seconds=1))
        return totals

    monkeypatch.setattr(balance_service, "ledger_totals", ledger_then_credit)
    torn = await balance_service.get_balance(user.id)
    monkeypatch.undo()
    settled = await balance_service.get_balance(user.id)

    assert torn.available == pytest.approx(0.005)
    assert settled.available == pytest.approx(0.007)
    assert torn.available <= settled.available
