from datetime import datetime

from beanie import Document
from pydantic import Field


class MiningPlan(Document):
    """Catalog entry. Never deleted; soft-deactivated via is_active."""
    name: str
    price: float  # USD
    mining_rate: float  # MH/s, display only
    daily_rate: float = Field(gt=0)  # mining-currency units credited per 24h
    monthly_roi: float = 0.0  # percentage, display only
    contract_period_days: int = Field(gt=0)
    currency: str = "BTC"
    description: str = ""
    features: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "mining_plans"
        indexes = [[("is_active", 1), ("price", 1)]]
