import httpx
import pytest

from app.core.exceptions import BadRequestError
from app.models.crypto_price import CryptoPrice
from app.services import prices

MARKET_ROWS = [
    {
        "symbol": "btc",
        "name": "Bitcoin",
        "current_price": 61000.5,
        "price_change_percentage_24h": 1.2,
        "market_cap": 1.2e12,
        "total_volume": 3.1e10,
        "image": "https://example.com/btc.png",
    },
    {"symbol": "eth", "name": "Ethereum", "current_price": 2400},
    {"symbol": "bad", "name": "No price", "current_price": None},
]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_refresh_prices_upserts_market_rows():
    async with _client(lambda request: httpx.Response(200, json=MARKET_ROWS)) as client:
        result = await prices.refresh_prices(client)

    assert result == {"updated": 2, "seeded": 0}
    btc = await CryptoPrice.find_one(CryptoPrice.symbol == "BTC")
    assert btc.price == 61000.5
    assert btc.change_24h == 1.2
    assert btc.logo_url == "https://example.com/btc.png"
    assert [p.symbol for p in await prices.list_prices()] == ["BTC", "ETH"]

    # Second refresh updates in place.
    rows = [{"symbol": "btc", "name": "Bitcoin", "current_price": 62000}]
    async with _client(lambda request: httpx.Response(200, json=rows)) as client:
        await prices.refresh_prices(client)
    assert await CryptoPrice.find_all().count() == 2
    assert (await CryptoPrice.find_one(CryptoPrice.symbol == "BTC")).price == 62000


async def test_feed_failure_seeds_fallback_prices():
    async with _client(lambda request: httpx.Response(429, json={"error": "rate limited"})) as client:
        result = await prices.refresh_prices(client)

    assert result["updated"] == 0
    assert result["seeded"] == 5
    eth = await CryptoPrice.find_one(CryptoPrice.symbol == "ETH")
    assert eth.price == 3000.0


async def test_feed_failure_keeps_stored_prices():
    await prices.upsert_price("BTC", {"name": "Bitcoin", "price": 58000.0})

    def boom(request):
        raise httpx.ConnectError("unreachable", request=request)

    async with _client(boom) as client:
        result = await prices.refresh_prices(client)

    assert result["seeded"] == 4
    assert (await CryptoPrice.find_one(CryptoPrice.symbol == "BTC")).price == 58000.0


async def test_price_feed_lookup_order():
    feed = prices.PriceFeed({"BTC": 45000.0, "XMR": 150.0})
    assert await feed.get_price("btc") == 45000.0

    await prices.upsert_price("BTC", {"name": "Bitcoin", "price": 60000.0})
    assert await feed.get_price("BTC") == 60000.0

    # Stored row gone: last known value still wins over the static fallback.
    await CryptoPrice.find_all().delete()
    assert await feed.get_price("BTC") == 60000.0
    assert await feed.get_price("XMR") == 150.0
    assert await feed.get_price("DOGE") is None


async def test_conversion_rate():
    feed = prices.PriceFeed({"BTC": 50000.0, "ETH": 2500.0})
    assert await feed.conversion_rate("ETH", "BTC") == pytest.approx(0.05)
    assert await feed.conversion_rate("btc", "BTC") == 1.0
    assert await feed.convert(2, "BTC", "ETH") == pytest.approx(40.0)
    with pytest.raises(BadRequestError):
        await feed.conversion_rate("DOGE", "BTC")
