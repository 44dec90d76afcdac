"""Admin dashboard totals."""

from beanie.operators import In

from app.core.config import get_settings
from app.models.deposit import Deposit
from app.models.mining_contract import MiningContract
from app.models.user import User
from app.models.withdrawal import OPEN_STATUSES, Withdrawal
from app.services.prices import PriceFeed


async def admin_stats(price_feed: PriceFeed | None = None) -> dict:
    settings = get_settings()
    feed = price_feed or PriceFeed()
    total_deposits = await Deposit.find(Deposit.status == "approved").sum(Deposit.amount_usd) or 0.0
    withdrawn = await Withdrawal.find(Withdrawal.status == "completed").sum(Withdrawal.amount_base) or 0.0
    base_price = await feed.get_price(settings.mining_currency) or 0.0
    withdrawn_usd = withdrawn * base_price
    return {
        "total_users": await User.find_all().count(),
        "total_deposits": round(total_deposits, 2),
        "total_withdrawals": withdrawn,
        "total_withdrawals_usd": round(withdrawn_usd, 2),
        "net_profit": round(total_deposits - withdrawn_usd, 2),
        "pending_deposits": await Deposit.find(Deposit.status == "pending").count(),
        "open_withdrawals": await Withdrawal.find(In(Withdrawal.status, list(OPEN_STATUSES))).count(),
        "active_contracts": await MiningContract.find(MiningContract.is_active == True).count(),  # noqa: E712
        "currency": settings.mining_currency,
    }
