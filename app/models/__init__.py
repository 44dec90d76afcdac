from app.models.user import User
from app.models.mining_plan import MiningPlan
from app.models.deposit import Deposit
from app.models.mining_contract import MiningContract
from app.models.earnings_ledger import EarningsLedgerEntry
from app.models.withdrawal import Withdrawal
from app.models.withdrawal_guard import WithdrawalGuard
from app.models.crypto_price import CryptoPrice
from app.models.audit_log import AuditLog
from app.models.failed_job import FailedJob

__all__ = [
    "User",
    "MiningPlan",
    "Deposit",
    "MiningContract",
    "EarningsLedgerEntry",
    "Withdrawal",
    "WithdrawalGuard",
    "CryptoPrice",
    "AuditLog",
    "FailedJob",
]
