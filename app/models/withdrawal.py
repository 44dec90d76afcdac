from datetime import datetime
from typing import Literal

from beanie import Document, PydanticObjectId
from pydantic import Field

WithdrawalStatus = Literal["pending", "processing", "completed", "rejected"]

OPEN_STATUSES = ("pending", "processing")


class Withdrawal(Document):
    user_id: PydanticObjectId
    amount: float  # in `currency`
    currency: str
    amount_base: float  # amount converted to the mining currency at request time
    rate: float = 1.0  # currency -> mining currency used for amount_base
    wallet_address: str
    status: WithdrawalStatus = "pending"
    transaction_hash: str | None = None
    network_fee: float | None = None
    processed_at: datetime | None = None
    processed_by: str | None = None
    rejection_reason: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "withdrawals"
        indexes = [
            [("user_id", 1), ("status", 1)],
            [("status", 1), ("created_at", -1)],
        ]
