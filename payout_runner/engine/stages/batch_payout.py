"""
Batch payout: submit, poll until terminal, reconcile per recipient.

Submission builds one batch covering every record. Polling then queries the
batch by request id:

  - terminal status (not ACCEPTED / PROCESSING)  -> stop
  - ACCEPTED / PROCESSING                        -> wait ``pending_backoff``, query again
  - query failed (transport or FAIL answer)      -> wait ``error_backoff``, query again

There is no attempt ceiling unless the PollPolicy sets one. Reconciliation
matches every submitted merchant send id against the returned list; a
missing id is fatal and no notification is sent.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from payout_runner.audit.logger import AuditLog
from payout_runner.console import records_table
from payout_runner.engine.errors import BatchStillProcessing, BatchSubmissionFailed, RecipientMissingFromResponse
from payout_runner.engine.pipeline import InteractionPort, Stage
from payout_runner.engine.polling import PollPolicy
from payout_runner.engine.retry import ProviderError
from payout_runner.models.enums import BatchStatus, is_terminal_batch_status, status_value
from payout_runner.models.records import Credentials, RunContext, total_amount
from payout_runner.providers.base import BatchItem, BatchRequest, BatchStatusResponse, LedgerGateway

logger = logging.getLogger("payout_runner.stages.batch_payout")

BATCH_OUTCOME_MESSAGES = {
    BatchStatus.SUCCESS: ("batch success", "Batch success"),
    BatchStatus.FAILED: ("batch failed", "Batch failed"),
    BatchStatus.PART_SUCCESS: (
        "batch part success",
        "Batch partially success, some recipients are not KYC yet to receive fund",
    ),
    BatchStatus.CANCELED: ("batch canceled", "Batch canceled by Binance"),
}


def build_batch_request(ctx: RunContext, now: datetime) -> BatchRequest:
    stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return BatchRequest(
        name=f"{ctx.records[0].pool_name} {stamp}",
        currency=ctx.currency,
        total_amount=total_amount(ctx.records),
        items=[
            BatchItem(merchant_send_id=r.merchant_send_id, email=r.binance_email, amount=r.amount)
            for r in ctx.records
        ],
    )


class BatchPayoutStage(Stage):
    title = "Execute payout"

    def __init__(
        self,
        audit: AuditLog,
        ledger: LedgerGateway,
        policy: PollPolicy | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(audit)
        self.ledger = ledger
        self.policy = policy or PollPolicy()
        self.clock = clock

    async def run(self, ctx: RunContext, port: InteractionPort) -> None:
        request_id = await self.submit(ctx)
        port.show(f"Payout submitted, querying batch {request_id}")

        response = await self.poll(request_id, ctx.credentials)
        self.reconcile(ctx, response)

        ctx.has_output = True
        port.show(records_table(ctx.records, with_status=True))
        ctx.continue_run = await port.confirm("Notify investors?", default=True)
        self.audit.info(f"end payout, continue {ctx.continue_run}")

    async def submit(self, ctx: RunContext) -> str:
        request = build_batch_request(ctx, self.clock())
        self.audit.info(
            "begin payout request",
            {"name": request.name, "total": str(request.total_amount), "count": request.total_number},
        )

        try:
            submission = await self.ledger.submit_batch(request, ctx.credentials)
        except ProviderError as e:
            self.audit.error(f"payout request failed {e}")
            raise BatchSubmissionFailed(str(e)) from e

        if not submission.ok or not submission.request_id:
            self.audit.error(
                "payout request rejected",
                {"code": submission.error_code, "message": submission.message},
            )
            raise BatchSubmissionFailed(f"{submission.error_code} {submission.message}".strip())

        ctx.batch_request_id = submission.request_id
        self.audit.info(f"payout request accepted {submission.request_id}")
        return submission.request_id

    async def poll(self, request_id: str, credentials: Credentials) -> BatchStatusResponse:
        policy = self.policy
        started = policy.clock()
        attempts = 0
        failures = 0

        self.audit.info("query batch transaction", {"request_id": request_id})
        while True:
            attempts += 1
            try:
                response = await self.ledger.query_batch_status(request_id, credentials)
            except ProviderError as e:
                failures += 1
                self.audit.error(f"query tx status failed attempt #{failures}: {e}")
                delay = policy.error_backoff
            else:
                if response.is_terminal:
                    self.audit.info(
                        f"batch terminal {status_value(response.batch_status)}",
                        {"attempts": attempts, "failures": failures},
                    )
                    return response
                if response.ok:
                    delay = policy.pending_backoff
                    logger.info("Batch %s still %s (attempt %d)", request_id, response.batch_status, attempts)
                else:
                    failures += 1
                    self.audit.error(
                        f"query tx status failed attempt #{failures}: {response.error_code} {response.message}"
                    )
                    delay = policy.error_backoff

            if policy.exhausted(attempts, policy.clock() - started):
                self.audit.error("batch polling limit reached", {"attempts": attempts, "failures": failures})
                raise BatchStillProcessing(f"{request_id} after {attempts} attempts")

            await policy.sleep(delay)

    def reconcile(self, ctx: RunContext, response: BatchStatusResponse) -> None:
        status = response.batch_status
        if not is_terminal_batch_status(status):
            self.audit.error(f"batch still processing {status_value(status)}")
            raise BatchStillProcessing(str(ctx.batch_request_id))

        ctx.batch_status = status
        if status in BATCH_OUTCOME_MESSAGES:
            log_msg, operator_msg = BATCH_OUTCOME_MESSAGES[status]
            self.audit.info(log_msg)
            logger.info(operator_msg)
        else:
            self.audit.error("batch unrecognised status", {"batch_status": status_value(status)})
            logger.warning("Batch finished with unrecognised status %s", status_value(status))

        self.audit.info("checking each investor transfer status")
        outcomes = {o.merchant_send_id: o for o in response.outcomes}
        for record in ctx.records:
            outcome = outcomes.get(record.merchant_send_id)
            if outcome is None:
                self.audit.error(
                    "investor missing from batch response",
                    {"merchant_send_id": record.merchant_send_id, "telegram": record.telegram},
                )
                raise RecipientMissingFromResponse(f"{record.telegram} ({record.merchant_send_id})")
            record.status = outcome.status
            record.order_id = outcome.order_id

        self.audit.info("investor status", {"records": [r.model_dump(mode="json") for r in ctx.records]})
