"""
Sandbox gateways for rehearsing a run without touching real funds.

Simulates provider behavior:
  - Configurable latency (default 100ms)
  - Configurable failure rate for transient errors (default 0%)
  - A batch that answers PROCESSING a few times before settling
  - Realistic transaction and order IDs

Used by ``payout execute --sandbox``.
"""

import asyncio
import logging
import random
import uuid
from decimal import Decimal
from typing import Optional

from payout_runner.config import settings
from payout_runner.engine.retry import PermanentError, ProviderError, RateLimitError
from payout_runner.models.enums import BatchStatus, RecipientStatus
from payout_runner.models.records import Credentials
from payout_runner.providers.base import (
    BatchRequest,
    BatchStatusResponse,
    BatchSubmission,
    LedgerGateway,
    NotificationGateway,
    RecipientOutcome,
    TransferResult,
)

logger = logging.getLogger("payout_runner.providers.mock")


async def _simulate(latency_ms: int, failure_rate: float) -> None:
    if latency_ms > 0:
        jitter = random.uniform(0.5, 1.5)
        await asyncio.sleep(latency_ms * jitter / 1000)

    roll = random.random()
    if roll < failure_rate * 0.5:
        raise RateLimitError(message="Mock rate limit, too many requests", retry_after=1.0)
    if roll < failure_rate:
        raise ProviderError(message="Mock transient error, service temporarily unavailable", status_code=503)


class MockLedgerGateway(LedgerGateway):
    """
    In-memory spot/funding wallets plus a batch payout desk.

    Balances move on transfer and payout, so a sandbox run behaves like the
    real account would.
    """

    def __init__(
        self,
        spot_balance: Decimal = Decimal("1000"),
        funding_balance: Decimal = Decimal("0"),
        processing_polls: Optional[int] = None,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
    ):
        self.spot = spot_balance
        self.funding = funding_balance
        self._processing_polls = processing_polls if processing_polls is not None else settings.mock_processing_polls
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._batches: dict[str, BatchRequest] = {}
        self._polls: dict[str, int] = {}

    @property
    def name(self) -> str:
        return "mock_ledger"

    async def get_spot_balance(self, currency: str, credentials: Credentials) -> str:
        await _simulate(self._latency_ms, self._failure_rate)
        return str(self.spot)

    async def get_funding_balance(self, currency: str, credentials: Credentials) -> str:
        await _simulate(self._latency_ms, self._failure_rate)
        return str(self.funding)

    async def transfer(self, currency: str, amount: Decimal, credentials: Credentials) -> Optional[TransferResult]:
        await _simulate(self._latency_ms, 0.0)
        if amount <= 0 or amount > self.spot:
            raise PermanentError(f"Mock transfer rejected: amount {amount}, spot {self.spot}")
        self.spot -= amount
        self.funding += amount
        return TransferResult(transaction_id=str(random.randint(10**10, 10**11 - 1)))

    async def submit_batch(self, request: BatchRequest, credentials: Credentials) -> BatchSubmission:
        await _simulate(self._latency_ms, 0.0)
        if request.total_amount > self.funding:
            return BatchSubmission(ok=False, error_code="400201", message="Mock insufficient funding balance")

        request_id = f"BATCH_{uuid.uuid4().hex[:16]}"
        self._batches[request_id] = request
        self._polls[request_id] = 0
        self.funding -= request.total_amount
        logger.info(
            "Mock batch %s accepted: %d items, %s %s",
            request_id,
            request.total_number,
            request.total_amount,
            request.currency,
        )
        return BatchSubmission(ok=True, request_id=request_id)

    async def query_batch_status(self, request_id: str, credentials: Credentials) -> BatchStatusResponse:
        await _simulate(self._latency_ms, self._failure_rate)
        request = self._batches.get(request_id)
        if request is None:
            return BatchStatusResponse(ok=False, error_code="400204", message=f"Unknown request id {request_id}")

        self._polls[request_id] += 1
        if self._polls[request_id] <= self._processing_polls:
            return BatchStatusResponse(ok=True, batch_status=BatchStatus.PROCESSING)

        return BatchStatusResponse(
            ok=True,
            batch_status=BatchStatus.SUCCESS,
            outcomes=[
                RecipientOutcome(
                    merchant_send_id=item.merchant_send_id,
                    status=RecipientStatus.SUCCESS,
                    order_id=f"po_{uuid.uuid4().hex[:16]}",
                )
                for item in request.items
            ],
        )


class MockNotificationGateway(NotificationGateway):
    """Records messages instead of sending them."""

    def __init__(self, failure_rate: Optional[float] = None, latency_ms: Optional[int] = None):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self.sent: list[tuple[int, str]] = []

    async def send(self, text: str, chat_id: int, bot_token: str) -> None:
        await _simulate(self._latency_ms, self._failure_rate)
        self.sent.append((chat_id, text))
        logger.info("Mock message to chat %s (%d chars)", chat_id, len(text))
