"""
Payout workflow: the full run from CSV to notifications.

Stages, in order:

  1. Read CSV file           (review + confirm)
  2. Balance reconciliation  (funding / spot decision table)
  3. Spot to Funding         (only when a transfer was chosen)
  4. Execute payout          (submit, poll, reconcile)
  5. Send notification       (all-settled fan-out)

Whatever happens, the run ends in the same cleanup: the output artifact is
written if the payout stage produced it, and the audit log is closed. The
exit code is 0 when the pipeline completes (including operator exits) and 1
when any stage raised. An interruption (Ctrl-C, cancellation) is audited
with exit code 1 and re-raised once cleanup is done.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from payout_runner.audit.logger import AuditLog
from payout_runner.engine.errors import WorkflowError
from payout_runner.engine.pipeline import InteractionPort, PipelineExecutor, Stage
from payout_runner.engine.polling import PollPolicy
from payout_runner.engine.stages.balance import BalanceReconciliationStage
from payout_runner.engine.stages.batch_payout import BatchPayoutStage
from payout_runner.engine.stages.ingest import IngestStage
from payout_runner.engine.stages.notify import NotificationStage
from payout_runner.engine.stages.transfer import FundTransferStage
from payout_runner.models.records import RunContext
from payout_runner.providers.base import LedgerGateway, NotificationGateway

logger = logging.getLogger("payout_runner.workflow")


@dataclass
class RunOutcome:
    exit_code: int
    log_path: Path
    output_path: Optional[Path] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def build_stages(
    audit: AuditLog,
    input_path: Path,
    ledger: LedgerGateway,
    notifier: NotificationGateway,
    policy: Optional[PollPolicy] = None,
    balance_query_retries: int = 2,
) -> list[Stage]:
    return [
        IngestStage(audit, input_path),
        BalanceReconciliationStage(audit, ledger, query_retries=balance_query_retries),
        FundTransferStage(audit, ledger),
        BatchPayoutStage(audit, ledger, policy=policy),
        NotificationStage(audit, notifier),
    ]


def write_output(ctx: RunContext, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [r.model_dump(mode="json") for r in ctx.records]
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


async def run_workflow(
    ctx: RunContext,
    stages: Sequence[Stage],
    port: InteractionPort,
    audit: AuditLog,
    output_path: Path,
) -> RunOutcome:
    """
    Execute every stage against ``ctx`` and always clean up.

    Args:
        ctx: Fresh run context with currency, credentials and template set.
        stages: Ordered stages, usually from ``build_stages``.
        port: Operator prompts.
        audit: Open audit log; closed by this function.
        output_path: Where the records JSON goes if the payout produced output.

    Returns:
        RunOutcome with the exit code and the paths reported to the operator.
    """
    outcome = RunOutcome(exit_code=0, log_path=audit.path)
    audit.info("run started", {"currency": ctx.currency, "stages": [s.title for s in stages]})

    try:
        await PipelineExecutor(stages, port, audit).run(ctx)
    except WorkflowError as e:
        outcome.exit_code = 1
        outcome.error = e
        logger.error("Run aborted: %s", e)
    except Exception as e:
        outcome.exit_code = 1
        outcome.error = e
        logger.exception("Run aborted by unexpected error")
    except BaseException as e:
        # Ctrl-C or task cancellation: record it, clean up, let it propagate
        outcome.exit_code = 1
        outcome.error = e
        audit.error("interrupted", {"error": repr(e)})
        logger.warning("Run interrupted: %r", e)
        raise
    finally:
        if ctx.has_output:
            audit.info("write output data", {"path": str(output_path)})
            try:
                outcome.output_path = write_output(ctx, output_path)
            except OSError as e:
                outcome.exit_code = 1
                audit.error("write output failed", {"path": str(output_path), "error": str(e)})
                logger.error("Could not write output to %s: %s", output_path, e)
        audit.info("run finished", {"exit_code": outcome.exit_code})
        audit.close("all done")

    return outcome
