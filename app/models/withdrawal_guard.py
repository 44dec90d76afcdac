from datetime import datetime

import pymongo
from beanie import Document, PydanticObjectId


class WithdrawalGuard(Document):
    """
    Per-user admission lease. A withdrawal row is inserted only by the request holding the lease,
    so a request that is refused never leaves a row other requests could count.
    """
    user_id: PydanticObjectId
    holder: str | None = None
    locked_until: datetime | None = None  # lease expiry; a crashed holder blocks at most this long
    version: int = 0  # bumped on every acquisition

    class Settings:
        name = "withdrawal_guards"
        indexes = [pymongo.IndexModel([("user_id", pymongo.ASCENDING)], unique=True)]
