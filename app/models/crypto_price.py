from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class CryptoPrice(Document):
    symbol: Indexed(str, unique=True)
    name: str = ""
    price: float  # USD
    change_1h: float | None = None
    change_24h: float | None = None
    change_7d: float | None = None
    market_cap: float | None = None
    volume_24h: float | None = None
    circulating_supply: float | None = None
    logo_url: str | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "crypto_prices"
