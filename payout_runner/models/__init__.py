from payout_runner.models.enums import BalanceKind, BatchStatus, FundingChoice, LogLevel, RecipientStatus
from payout_runner.models.records import BalanceResult, Credentials, PayoutRecord, RunContext, total_amount

__all__ = [
    "BalanceKind",
    "BalanceResult",
    "BatchStatus",
    "Credentials",
    "FundingChoice",
    "LogLevel",
    "PayoutRecord",
    "RecipientStatus",
    "RunContext",
    "total_amount",
]
