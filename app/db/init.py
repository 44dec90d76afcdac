import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.audit_log import AuditLog
from app.models.crypto_price import CryptoPrice
from app.models.deposit import Deposit
from app.models.earnings_ledger import EarningsLedgerEntry
from app.models.failed_job import FailedJob
from app.models.mining_contract import MiningContract
from app.models.mining_plan import MiningPlan
from app.models.user import User
from app.models.withdrawal import Withdrawal
from app.models.withdrawal_guard import WithdrawalGuard

DOCUMENT_MODELS = [
    User,
    MiningPlan,
    Deposit,
    MiningContract,
    EarningsLedgerEntry,
    Withdrawal,
    WithdrawalGuard,
    CryptoPrice,
    AuditLog,
    FailedJob,
]

_initialized = False


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(database=None) -> None:
    """Bind Beanie models. Pass `database` to use an already-open (or in-memory) database."""
    global _initialized
    if database is None:
        if _initialized:
            return
        settings = get_settings()
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
        database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    _initialized = True
