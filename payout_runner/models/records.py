"""Run-state models: payout records, credentials and the shared run context."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import BaseModel, Field, SecretStr

from payout_runner.models.enums import BalanceKind, BatchStatus, RecipientStatus


class PayoutRecord(BaseModel):
    """
    One row of the input batch.

    ``merchant_send_id`` is the correlation key between the submitted batch
    and the provider's per-recipient status list. ``status`` and ``order_id``
    stay empty until the batch payout stage resolves them.
    """

    merchant_send_id: str
    pool_name: str
    pool_slug: str
    round: int
    telegram: str
    binance_email: str
    amount: Decimal = Field(ge=0)
    chat_id: int
    status: Optional[Union[RecipientStatus, str]] = None
    order_id: Optional[str] = None


class Credentials(BaseModel):
    api_key: str
    secret_key: SecretStr
    pay_api_key: str
    pay_secret_key: SecretStr
    bot_token: SecretStr = SecretStr("")


@dataclass(frozen=True)
class BalanceResult:
    """
    Outcome of a balance query.

    Only KNOWN carries a confirmed amount. UNKNOWN and ERROR keep the raw
    answer or error text so the audit trail shows why the balance is missing.
    """

    kind: BalanceKind
    amount: Decimal = Decimal("0")
    detail: str = ""

    @classmethod
    def known(cls, amount: Decimal) -> "BalanceResult":
        return cls(kind=BalanceKind.KNOWN, amount=amount)

    @classmethod
    def unknown(cls, raw: str) -> "BalanceResult":
        return cls(kind=BalanceKind.UNKNOWN, detail=raw)

    @classmethod
    def error(cls, detail: str) -> "BalanceResult":
        return cls(kind=BalanceKind.ERROR, detail=detail)

    @classmethod
    def parse(cls, raw: str) -> "BalanceResult":
        try:
            value = Decimal(raw)
        except (InvalidOperation, TypeError):
            return cls.unknown(str(raw))
        if not value.is_finite():
            return cls.unknown(str(raw))
        return cls.known(value)

    @property
    def is_known(self) -> bool:
        return self.kind is BalanceKind.KNOWN

    @property
    def effective(self) -> Decimal:
        """Amount used by the decision table; anything not KNOWN counts as zero."""
        return self.amount if self.is_known else Decimal("0")

    def __str__(self) -> str:
        return str(self.amount) if self.is_known else self.kind.value


@dataclass
class RunContext:
    """
    Mutable state threaded through every stage of one run.

    Stages read and write fields in place. Once ``continue_run`` is False no
    stage may touch wallet or payment state.
    """

    currency: str
    credentials: Credentials
    records: list[PayoutRecord] = field(default_factory=list)
    message_template: str = ""

    required_total: Decimal = Decimal("0")
    spot_balance: Optional[BalanceResult] = None
    funding_balance: Optional[BalanceResult] = None
    transfer_amount: Decimal = Decimal("0")
    transfer_spot_to_funding: bool = False
    continue_run: bool = True

    batch_request_id: Optional[str] = None
    batch_status: Union[BatchStatus, str, None] = None
    has_output: bool = False
    failed_notifications: list[str] = field(default_factory=list)


def total_amount(records: list[PayoutRecord]) -> Decimal:
    """Exact decimal sum of record amounts."""
    return sum((r.amount for r in records), Decimal("0"))
