"""Enumerations for the payout runner domain model."""

from enum import Enum
from typing import Optional, Type, TypeVar, Union

E = TypeVar("E", bound=Enum)

PENDING_BATCH_STATUSES = frozenset({"ACCEPTED", "PROCESSING"})


class BatchStatus(str, Enum):
    """
    Lifecycle states of a Binance Pay batch payout.

    Only ACCEPTED and PROCESSING are pending. Any other status the provider
    reports, listed here or not, ends the batch.
    """

    ACCEPTED = "ACCEPTED"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    PART_SUCCESS = "PART_SUCCESS"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return is_terminal_batch_status(self)


class RecipientStatus(str, Enum):
    """Per-recipient outcome reported for a batch."""

    SUCCESS = "SUCCESS"
    FAIL = "FAIL"
    AWAITING_RECEIPT = "AWAITING_RECEIPT"


class BalanceKind(str, Enum):
    """How much we know about a wallet balance."""

    KNOWN = "known"
    UNKNOWN = "unknown"  # provider answered, but not with a decimal
    ERROR = "error"  # query failed


class FundingChoice(str, Enum):
    """Operator options when the funding wallet already covers the payout."""

    TRANSFER_SPOT_FUNDING = "transfer_spot_funding"
    USE_FUNDING = "use_funding"
    EXIT = "exit"


class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


def coerce_status(enum_cls: Type[E], raw: str) -> Union[E, str]:
    """Enum member for a known value, the raw string for anything else."""
    try:
        return enum_cls(raw)
    except ValueError:
        return raw


def status_value(status: Union[Enum, str, None]) -> Optional[str]:
    if isinstance(status, Enum):
        return status.value
    return status


def is_terminal_batch_status(status: Union[BatchStatus, str, None]) -> bool:
    value = status_value(status)
    return bool(value) and value not in PENDING_BATCH_STATUSES
