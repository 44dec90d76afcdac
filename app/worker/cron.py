"""Cron bodies: price refresh and contract expiry."""

from app.core.clock import utcnow
from app.core.logging import get_logger
from app.db.init import init_db
from app.services.contracts import expire_contracts
from app.services.prices import refresh_prices

log = get_logger(__name__)


async def run_refresh_prices() -> dict[str, int]:
    """Pull market prices; falls back to static prices when the feed is down."""
    await init_db()
    return await refresh_prices()


async def run_expire_contracts() -> int:
    """Settle and deactivate contracts past their end date."""
    await init_db()
    expired = await expire_contracts(utcnow())
    if expired:
        log.info("contracts_expired", count=expired)
    return expired
