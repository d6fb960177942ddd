"""Tests for batch submission, status polling and per-recipient reconciliation."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from payout_runner.engine.errors import BatchStillProcessing, BatchSubmissionFailed, RecipientMissingFromResponse
from payout_runner.engine.polling import PollPolicy
from payout_runner.engine.retry import ProviderError
from payout_runner.engine.stages.batch_payout import BatchPayoutStage
from payout_runner.models.enums import BatchStatus, RecipientStatus
from payout_runner.providers.base import BatchStatusResponse, BatchSubmission, RecipientOutcome

PROCESSING = BatchStatusResponse(ok=True, batch_status=BatchStatus.PROCESSING)
ACCEPTED = BatchStatusResponse(ok=True, batch_status=BatchStatus.ACCEPTED)


@pytest.fixture
def stage(audit, ledger, policy):
    return BatchPayoutStage(
        audit,
        ledger,
        policy=policy,
        clock=lambda: datetime(2024, 12, 15, 12, 0, tzinfo=timezone.utc),
    )


class TestSubmission:
    @pytest.mark.asyncio
    async def test_batch_covers_every_record(self, stage, ledger, make_ctx):
        ctx = make_ctx("10.5", "20", "0.25")

        request_id = await stage.submit(ctx)

        request = ledger.submitted
        assert request_id == "BATCH_1"
        assert ctx.batch_request_id == "BATCH_1"
        assert request.total_amount == Decimal("30.75")
        assert request.total_number == 3
        assert request.name == "Alpha Pool 2024-12-15T12:00:00.000Z"
        assert [i.merchant_send_id for i in request.items] == [r.merchant_send_id for r in ctx.records]
        assert [i.email for i in request.items] == [r.binance_email for r in ctx.records]

    @pytest.mark.asyncio
    async def test_provider_rejection_is_fatal(self, stage, ledger, make_ctx):
        ledger.submission = BatchSubmission(ok=False, error_code="400201", message="balance not enough")

        with pytest.raises(BatchSubmissionFailed) as exc:
            await stage.submit(make_ctx("1"))

        assert "400201 balance not enough" in str(exc.value)
        assert ledger.calls == ["submit"]

    @pytest.mark.asyncio
    async def test_transport_failure_is_fatal(self, stage, ledger, make_ctx):
        ledger.submission = ProviderError("connection reset")

        with pytest.raises(BatchSubmissionFailed, match="PAYOUT_REQUEST_ERROR: connection reset"):
            await stage.submit(make_ctx("1"))


class TestPolling:
    @pytest.mark.asyncio
    async def test_keeps_polling_while_not_terminal(self, stage, ledger, sleeper, make_ctx):
        ctx = make_ctx("1")
        final = ledger.settle_with(BatchStatus.SUCCESS, ctx.records)
        ledger.status_responses = [ACCEPTED, PROCESSING, PROCESSING, final]

        response = await stage.poll("BATCH_1", ctx.credentials)

        assert response is final
        assert ledger.calls.count("query") == 4
        # backoff after every non-terminal answer, none after the terminal one
        assert sleeper.delays == [5.0, 5.0, 5.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [BatchStatus.SUCCESS, BatchStatus.PART_SUCCESS, BatchStatus.FAILED, BatchStatus.CANCELED],
    )
    async def test_stops_on_first_terminal_status(self, stage, ledger, make_ctx, status):
        ctx = make_ctx("1")
        ledger.status_responses = [PROCESSING, ledger.settle_with(status, ctx.records), PROCESSING]

        response = await stage.poll("BATCH_1", ctx.credentials)

        assert response.batch_status is status
        assert ledger.calls.count("query") == 2

    @pytest.mark.asyncio
    async def test_query_failures_back_off_two_minutes(self, stage, ledger, sleeper, make_ctx, audit_entries):
        ctx = make_ctx("1")
        ledger.status_responses = [
            ProviderError("gateway timeout"),
            BatchStatusResponse(ok=False, error_code="500", message="system busy"),
            PROCESSING,
            ledger.settle_with(BatchStatus.SUCCESS, ctx.records),
        ]

        await stage.poll("BATCH_1", ctx.credentials)

        assert sleeper.delays == [120.0, 120.0, 5.0]
        failures = [e["msg"] for e in audit_entries() if e["msg"].startswith("query tx status failed")]
        assert failures[0].startswith("query tx status failed attempt #1")
        assert failures[1].startswith("query tx status failed attempt #2")

    @pytest.mark.asyncio
    async def test_default_policy_has_no_ceiling(self, audit, ledger, sleeper, make_ctx):
        ctx = make_ctx("1")
        ledger.status_responses = [ProviderError("down")] * 50 + [ledger.settle_with(BatchStatus.SUCCESS, ctx.records)]
        stage = BatchPayoutStage(audit, ledger, policy=PollPolicy(sleep=sleeper))

        response = await stage.poll("BATCH_1", ctx.credentials)

        assert response.batch_status is BatchStatus.SUCCESS
        assert len(sleeper.delays) == 50

    @pytest.mark.asyncio
    async def test_configured_ceiling_raises_still_processing(self, audit, ledger, sleeper, make_ctx):
        ledger.status_responses = [PROCESSING]
        stage = BatchPayoutStage(audit, ledger, policy=PollPolicy(max_attempts=3, sleep=sleeper))

        with pytest.raises(BatchStillProcessing):
            await stage.poll("BATCH_1", make_ctx("1").credentials)

        assert ledger.calls.count("query") == 3

    @pytest.mark.asyncio
    async def test_deadline_raises_still_processing(self, audit, ledger, sleeper, make_ctx):
        ticks = iter([0.0, 30.0, 61.0])
        ledger.status_responses = [PROCESSING]
        policy = PollPolicy(deadline=60.0, sleep=sleeper, clock=lambda: next(ticks))

        with pytest.raises(BatchStillProcessing):
            await BatchPayoutStage(audit, ledger, policy=policy).poll("BATCH_1", make_ctx("1").credentials)

        assert ledger.calls.count("query") == 2


class TestReconciliation:
    def test_copies_status_and_order_id(self, stage, ledger, make_ctx):
        ctx = make_ctx("1", "2")
        second = ctx.records[1].merchant_send_id
        response = ledger.settle_with(BatchStatus.PART_SUCCESS, ctx.records, **{second: RecipientStatus.AWAITING_RECEIPT})

        stage.reconcile(ctx, response)

        assert [r.status for r in ctx.records] == [RecipientStatus.SUCCESS, RecipientStatus.AWAITING_RECEIPT]
        assert [r.order_id for r in ctx.records] == ["order-0", "order-1"]
        assert ctx.batch_status is BatchStatus.PART_SUCCESS

    def test_missing_recipient_is_fatal(self, stage, make_ctx):
        ctx = make_ctx("1", "2")
        response = BatchStatusResponse(
            ok=True,
            batch_status=BatchStatus.SUCCESS,
            outcomes=[RecipientOutcome(merchant_send_id=ctx.records[0].merchant_send_id, status=RecipientStatus.SUCCESS)],
        )

        with pytest.raises(RecipientMissingFromResponse) as exc:
            stage.reconcile(ctx, response)

        assert exc.value.code == "INVESTOR_NOT_FOUND"
        assert "@investor1" in str(exc.value)

    def test_extra_entries_in_response_are_ignored(self, stage, ledger, make_ctx):
        ctx = make_ctx("1")
        response = ledger.settle_with(BatchStatus.SUCCESS, ctx.records)
        response.outcomes.append(RecipientOutcome(merchant_send_id="someone-else", status=RecipientStatus.FAIL))

        stage.reconcile(ctx, response)

        assert ctx.records[0].status is RecipientStatus.SUCCESS

    def test_non_terminal_status_is_an_invariant_break(self, stage, make_ctx):
        with pytest.raises(BatchStillProcessing):
            stage.reconcile(make_ctx("1"), PROCESSING)

    def test_failed_batch_does_not_abort(self, stage, ledger, make_ctx):
        ctx = make_ctx("1")
        response = ledger.settle_with(
            BatchStatus.FAILED, ctx.records, **{ctx.records[0].merchant_send_id: RecipientStatus.FAIL}
        )

        stage.reconcile(ctx, response)

        assert ctx.records[0].status is RecipientStatus.FAIL


@pytest.mark.asyncio
async def test_run_marks_output_and_asks_to_notify(stage, ledger, port, make_ctx):
    ctx = make_ctx("1", "2")
    ledger.status_responses = [PROCESSING, ledger.settle_with(BatchStatus.SUCCESS, ctx.records)]
    port.confirms.append(False)

    await stage.run(ctx, port)

    assert ctx.has_output is True
    assert ctx.continue_run is False
    assert port.asked == ["Notify investors?"]
