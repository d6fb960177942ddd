"""
Abstract wallet/payment and messaging provider interfaces.

The workflow only talks to these interfaces. ``providers.binance`` and
``providers.telegram`` wrap the real HTTP APIs; ``providers.mock_provider``
simulates them for sandbox runs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from payout_runner.models.enums import BatchStatus, RecipientStatus, is_terminal_batch_status
from payout_runner.models.records import Credentials


@dataclass
class BatchItem:
    """One recipient line of a batch payout."""

    merchant_send_id: str
    email: str
    amount: Decimal


@dataclass
class BatchRequest:
    """Request to create a batch payout."""

    name: str
    currency: str
    total_amount: Decimal
    items: list[BatchItem]

    @property
    def total_number(self) -> int:
        return len(self.items)


@dataclass
class BatchSubmission:
    """Provider answer to a batch payout request."""

    ok: bool
    request_id: Optional[str] = None
    error_code: Optional[str] = None
    message: str = ""


@dataclass
class RecipientOutcome:
    merchant_send_id: str
    status: Union[RecipientStatus, str]  # raw string when the provider reports an unlisted status
    order_id: Optional[str] = None


@dataclass
class BatchStatusResponse:
    """Provider answer to a batch status query."""

    ok: bool
    batch_status: Union[BatchStatus, str, None] = None
    outcomes: list[RecipientOutcome] = field(default_factory=list)
    error_code: Optional[str] = None
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.ok and is_terminal_batch_status(self.batch_status)


@dataclass
class TransferResult:
    transaction_id: str


class LedgerGateway(ABC):
    """Custodial wallets plus batch payouts on the same account."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def get_spot_balance(self, currency: str, credentials: Credentials) -> str:
        """Free spot balance as a decimal string. Raises ProviderError."""
        ...

    @abstractmethod
    async def get_funding_balance(self, currency: str, credentials: Credentials) -> str:
        """Free funding balance as a decimal string. Raises ProviderError."""
        ...

    @abstractmethod
    async def transfer(self, currency: str, amount: Decimal, credentials: Credentials) -> Optional[TransferResult]:
        """Move ``amount`` from spot to funding."""
        ...

    @abstractmethod
    async def submit_batch(self, request: BatchRequest, credentials: Credentials) -> BatchSubmission:
        """
        Submit a batch payout.

        Raises ProviderError on transport failure. A provider-level rejection
        comes back as ``BatchSubmission(ok=False)``.
        """
        ...

    @abstractmethod
    async def query_batch_status(self, request_id: str, credentials: Credentials) -> BatchStatusResponse:
        ...

    async def aclose(self) -> None:
        return None


class NotificationGateway(ABC):
    """Delivers one rendered message to one recipient."""

    @abstractmethod
    async def send(self, text: str, chat_id: int, bot_token: str) -> None:
        """Raises ProviderError when the message is not accepted."""
        ...

    async def aclose(self) -> None:
        return None
