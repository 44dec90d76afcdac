from datetime import datetime
from typing import Literal

from beanie import Document, PydanticObjectId
from pydantic import Field

DepositStatus = Literal["pending", "approved", "rejected"]


class Deposit(Document):
    """User's claim of payment for a plan; reviewed manually by an admin."""
    user_id: PydanticObjectId
    plan_id: PydanticObjectId
    amount_usd: float  # plan price at submission
    currency: str
    crypto_amount: float
    wallet_address: str
    transaction_hash: str | None = None  # user-supplied, never verified on-chain
    status: DepositStatus = "pending"
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "deposits"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("status", 1), ("created_at", -1)],
        ]
