"""Shared test fixtures: scripted operator, fake gateways, audit log on disk."""

from collections import deque
from decimal import Decimal
from typing import Any, Optional

import pytest
from pydantic import SecretStr

from payout_runner.audit.logger import AuditLog, read_entries
from payout_runner.engine.polling import PollPolicy
from payout_runner.engine.retry import ProviderError
from payout_runner.models.enums import BatchStatus, RecipientStatus
from payout_runner.models.records import Credentials, PayoutRecord, RunContext
from payout_runner.providers.base import (
    BatchRequest,
    BatchStatusResponse,
    BatchSubmission,
    LedgerGateway,
    NotificationGateway,
    RecipientOutcome,
    TransferResult,
)


class ScriptedPort:
    """Answers prompts from queues and fails loudly on unexpected ones."""

    def __init__(self):
        self.confirms: deque[bool] = deque()
        self.selections: deque[Any] = deque()
        self.asked: list[str] = []
        self.shown: list[Any] = []
        self.offered: list[list[Any]] = []

    async def confirm(self, message: str, default: bool = True) -> bool:
        self.asked.append(message)
        if not self.confirms:
            raise AssertionError(f"unexpected confirm: {message}")
        return self.confirms.popleft()

    async def select(self, message, choices):
        self.offered.append([v for v, _ in choices])
        self.asked.append(message)
        if not self.selections:
            raise AssertionError(f"unexpected select: {message}")
        value = self.selections.popleft()
        assert value in [v for v, _ in choices]
        return value

    def show(self, renderable: Any) -> None:
        self.shown.append(renderable)


class FakeLedger(LedgerGateway):
    """
    Scriptable ledger. Balance attributes hold a string or an exception;
    ``status_responses`` is consumed in order and its last item repeats.
    """

    def __init__(self):
        self.spot: Any = "0"
        self.funding: Any = "0"
        self.transfer_result: Any = TransferResult(transaction_id="tx-1")
        self.submission: Any = BatchSubmission(ok=True, request_id="BATCH_1")
        self.status_responses: list[Any] = []
        self.calls: list[str] = []
        self.submitted: Optional[BatchRequest] = None
        self.transferred: Optional[Decimal] = None

    @property
    def name(self) -> str:
        return "fake"

    @staticmethod
    def _answer(value: Any) -> Any:
        if isinstance(value, BaseException):
            raise value
        return value

    async def get_spot_balance(self, currency, credentials):
        self.calls.append("spot")
        return self._answer(self.spot)

    async def get_funding_balance(self, currency, credentials):
        self.calls.append("funding")
        return self._answer(self.funding)

    async def transfer(self, currency, amount, credentials):
        self.calls.append("transfer")
        self.transferred = amount
        return self._answer(self.transfer_result)

    async def submit_batch(self, request, credentials):
        self.calls.append("submit")
        self.submitted = request
        return self._answer(self.submission)

    async def query_batch_status(self, request_id, credentials):
        self.calls.append("query")
        if len(self.status_responses) > 1:
            return self._answer(self.status_responses.pop(0))
        return self._answer(self.status_responses[0])

    def settle_with(self, status: BatchStatus, records: list[PayoutRecord], **overrides: RecipientStatus) -> BatchStatusResponse:
        """Terminal response covering ``records``; override statuses by merchant send id."""
        return BatchStatusResponse(
            ok=True,
            batch_status=status,
            outcomes=[
                RecipientOutcome(
                    merchant_send_id=r.merchant_send_id,
                    status=overrides.get(r.merchant_send_id, RecipientStatus.SUCCESS),
                    order_id=f"order-{i}",
                )
                for i, r in enumerate(records)
            ],
        )


class FakeNotifier(NotificationGateway):
    def __init__(self):
        self.failing_chats: set[int] = set()
        self.sent: list[tuple[int, str]] = []
        self.attempted: list[int] = []

    async def send(self, text: str, chat_id: int, bot_token: str) -> None:
        self.attempted.append(chat_id)
        if chat_id in self.failing_chats:
            raise ProviderError(f"chat {chat_id} not found", status_code=400, retriable=False)
        self.sent.append((chat_id, text))


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def port():
    return ScriptedPort()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def policy(sleeper):
    return PollPolicy(error_backoff=120.0, pending_backoff=5.0, sleep=sleeper)


@pytest.fixture
def audit(tmp_path):
    log = AuditLog(tmp_path / "history.log")
    yield log
    log.close()


@pytest.fixture
def audit_entries(audit):
    """Callable returning what has been written to the audit file so far."""

    def _read():
        return read_entries(audit.path)

    return _read


@pytest.fixture
def make_records():
    def _make(*amounts: str) -> list[PayoutRecord]:
        return [
            PayoutRecord(
                merchant_send_id=f"TRANSFER_investor{i}@example.com_20241215T120000000000",
                pool_name="Alpha Pool",
                pool_slug="alpha-pool",
                round=3,
                telegram=f"@investor{i}",
                binance_email=f"investor{i}@example.com",
                amount=Decimal(amount),
                chat_id=1000 + i,
            )
            for i, amount in enumerate(amounts)
        ]

    return _make


@pytest.fixture
def make_ctx(make_records):
    def _make(*amounts: str) -> RunContext:
        return RunContext(
            currency="USDT",
            credentials=Credentials(
                api_key="ak",
                secret_key=SecretStr("sk"),
                pay_api_key="pak",
                pay_secret_key=SecretStr("psk"),
                bot_token=SecretStr("bot"),
            ),
            records=make_records(*amounts),
            message_template="Hi {{ telegram }}, {{ amount }} {{ currency }} sent ({{ status }})",
        )

    return _make


@pytest.fixture
def payout_csv(tmp_path):
    """Write a payout CSV and return its path."""

    def _write(rows: list[dict[str, Any]], name: str = "payout.csv"):
        header = "pool_name,pool_slug,round,telegram,binance_email,amount,chat_id"
        lines = [header] + [
            ",".join(str(row[c]) for c in header.split(",")) for row in rows
        ]
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
