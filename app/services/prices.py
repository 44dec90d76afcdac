"""Market prices: periodic pull from CoinGecko with stored, last-known and static fallbacks."""

from typing import Any

import httpx
from pymongo.errors import PyMongoError

from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.models.crypto_price import CryptoPrice

log = get_logger(__name__)

# Survives across PriceFeed instances within a process.
_last_known: dict[str, float] = {}


class PriceFeed:
    """Read-only USD price source. Lookups never raise; missing symbols return None."""

    def __init__(self, fallback_prices: dict[str, float] | None = None):
        if fallback_prices is None:
            fallback_prices = get_settings().fallback_prices
        self._fallback = {k.upper(): float(v) for k, v in fallback_prices.items()}

    async def get_price(self, symbol: str) -> float | None:
        symbol = symbol.upper()
        try:
            doc = await CryptoPrice.find_one(CryptoPrice.symbol == symbol)
        except PyMongoError as e:
            log.warning("price_lookup_failed", symbol=symbol, error=str(e))
            doc = None
        if doc is not None and doc.price > 0:
            _last_known[symbol] = doc.price
            return doc.price
        if symbol in _last_known:
            return _last_known[symbol]
        return self._fallback.get(symbol)

    async def conversion_rate(self, from_symbol: str, to_symbol: str) -> float:
        """Units of `to_symbol` per one unit of `from_symbol`."""
        if from_symbol.upper() == to_symbol.upper():
            return 1.0
        src = await self.get_price(from_symbol)
        dst = await self.get_price(to_symbol)
        if not src or not dst:
            raise BadRequestError(
                f"No price available to convert {from_symbol.upper()} to {to_symbol.upper()}",
                details={"from": from_symbol.upper(), "to": to_symbol.upper()},
            )
        return src / dst

    async def convert(self, amount: float, from_symbol: str, to_symbol: str) -> float:
        return amount * await self.conversion_rate(from_symbol, to_symbol)


def _price_fields(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": row.get("name") or "",
        "price": float(row["current_price"]),
        "change_1h": row.get("price_change_percentage_1h_in_currency"),
        "change_24h": row.get("price_change_percentage_24h"),
        "change_7d": row.get("price_change_percentage_7d_in_currency"),
        "market_cap": row.get("market_cap"),
        "volume_24h": row.get("total_volume"),
        "circulating_supply": row.get("circulating_supply"),
        "logo_url": row.get("image"),
        "updated_at": utcnow(),
    }


async def upsert_price(symbol: str, fields: dict[str, Any]) -> CryptoPrice:
    symbol = symbol.upper()
    doc = await CryptoPrice.find_one(CryptoPrice.symbol == symbol)
    if doc is None:
        doc = CryptoPrice(symbol=symbol, **fields)
        await doc.insert()
    else:
        for key, value in fields.items():
            setattr(doc, key, value)
        await doc.save()
    _last_known[symbol] = doc.price
    return doc


async def _seed_fallback_prices() -> int:
    """Insert static prices only for symbols that have never been stored."""
    seeded = 0
    for symbol, price in get_settings().fallback_prices.items():
        if await CryptoPrice.find_one(CryptoPrice.symbol == symbol.upper()) is None:
            await CryptoPrice(symbol=symbol.upper(), name=symbol.upper(), price=price).insert()
            seeded += 1
    return seeded


async def refresh_prices(client: httpx.AsyncClient | None = None) -> dict[str, int]:
    """Pull market prices and upsert them. Feed failure falls back to static prices."""
    settings = get_settings()
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.price_feed_timeout_seconds)
    try:
        resp = await client.get(settings.price_feed_url)
        resp.raise_for_status()
        rows = resp.json()
        updated = 0
        for row in rows:
            if not row.get("symbol") or row.get("current_price") is None:
                continue
            await upsert_price(row["symbol"], _price_fields(row))
            updated += 1
        log.info("prices_refreshed", updated=updated)
        return {"updated": updated, "seeded": 0}
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        log.warning("price_feed_failed", error=str(e))
        seeded = await _seed_fallback_prices()
        return {"updated": 0, "seeded": seeded}
    finally:
        if owns_client:
            await client.aclose()


async def list_prices() -> list[CryptoPrice]:
    return await CryptoPrice.find_all().sort(+CryptoPrice.symbol).to_list()
