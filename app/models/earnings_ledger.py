from datetime import datetime

import pymongo
from beanie import Document, PydanticObjectId
from pydantic import Field


class EarningsLedgerEntry(Document):
    """Append-only credit written by the accrual job. Never updated or deleted."""
    contract_id: PydanticObjectId
    user_id: PydanticObjectId
    timestamp: datetime
    bucket: int  # tick bucket; (contract_id, bucket) is unique
    period_start: datetime  # (contract_id, period_start) is unique
    period_end: datetime
    amount: float  # mining-currency units
    usd_value: float
    currency: str = "BTC"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "earnings_ledger"
        indexes = [
            pymongo.IndexModel(
                [("contract_id", pymongo.ASCENDING), ("bucket", pymongo.ASCENDING)],
                unique=True,
                name="contract_bucket_unique",
            ),
            pymongo.IndexModel(
                [("contract_id", pymongo.ASCENDING), ("period_start", pymongo.ASCENDING)],
                unique=True,
                name="contract_period_start_unique",
            ),
            [("user_id", 1), ("timestamp", -1)],
        ]
