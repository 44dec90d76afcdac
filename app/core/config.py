from functools import lru_cache
from typing import Any, Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]

DEFAULT_FALLBACK_PRICES = {
    "BTC": 45000.0,
    "ETH": 3000.0,
    "USDT": 1.0,
    "BNB": 300.0,
    "SOL": 100.0,
}

DEFAULT_PAYMENT_ADDRESSES = {
    "BNB": "0x09f616C4118870CcB2BE1aCE1EAc090bF443833B",
    "BTC": "bc1qfxl02mlrwfnnamr6qqhcgcutyth87du67u0nm0",
    "USDT": "TDsBManQwvT698thSMKmhjYqKTupVxWFwK",
    "SOL": "9ENQmbQFA1mKWYZWaL1qpH1ACLioLz55eANsigHGckXt",
    "ETH": "0x09f616C4118870CcB2BE1aCE1EAc090bF443833B",
}


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except ValueError:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="minevault", alias="MONGODB_DB_NAME")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Google OAuth
    google_client_id: str = Field(default="", alias="GOOGLE_CLIENT_ID")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Accrual
    mining_currency: str = Field(default="BTC", alias="MINING_CURRENCY")
    accrual_enabled: bool = Field(default=True, alias="ACCRUAL_ENABLED")
    accrual_period_seconds: float = Field(default=1.0, gt=0, alias="ACCRUAL_PERIOD_SECONDS")

    # Price feed
    price_feed_url: str = Field(
        default=(
            "https://api.coingecko.com/api/v3/coins/markets"
            "?vs_currency=usd&order=market_cap_desc&per_page=10&page=1&sparkline=false"
            "&price_change_percentage=1h%2C24h%2C7d"
        ),
        alias="PRICE_FEED_URL",
    )
    price_feed_timeout_seconds: float = Field(default=10.0, alias="PRICE_FEED_TIMEOUT_SECONDS")
    price_refresh_minutes: int = Field(default=5, ge=1, le=60, alias="PRICE_REFRESH_MINUTES")
    fallback_prices: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FALLBACK_PRICES))

    # Deposits / withdrawals
    payment_addresses: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PAYMENT_ADDRESSES))
    withdrawal_currencies: List[str] = ["BTC", "ETH", "USDT", "BNB", "SOL", "ADA", "DOT"]
    withdrawal_conflict_retries: int = 5
    withdrawal_retry_delay_seconds: float = 0.05  # grows linearly per attempt
    withdrawal_lock_seconds: float = 10.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
