from datetime import datetime

import pymongo
from beanie import Document, PydanticObjectId
from pydantic import Field


class MiningContract(Document):
    user_id: PydanticObjectId
    plan_id: PydanticObjectId
    deposit_id: PydanticObjectId
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    total_earnings: float = 0.0  # advisory; the ledger is authoritative
    last_accrual_at: datetime | None = None  # period_end of the newest ledger entry
    cancelled_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def accrued_until(self) -> datetime:
        return self.last_accrual_at or self.start_date

    class Settings:
        name = "mining_contracts"
        indexes = [
            pymongo.IndexModel([("deposit_id", pymongo.ASCENDING)], unique=True),
            [("is_active", 1), ("end_date", 1)],
            [("user_id", 1), ("created_at", -1)],
        ]
