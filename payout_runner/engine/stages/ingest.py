"""Read the payout file into the run context and let the operator review it."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from payout_runner.audit.logger import AuditLog
from payout_runner.console import records_table
from payout_runner.engine.errors import InputUnavailable
from payout_runner.engine.pipeline import InteractionPort, Stage
from payout_runner.ingest.csv_reader import load_records
from payout_runner.models.records import RunContext


class IngestStage(Stage):
    title = "Read CSV file"

    def __init__(
        self,
        audit: AuditLog,
        path: Path,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(audit)
        self.path = Path(path)
        self.clock = clock

    def should_skip(self, ctx: RunContext) -> bool:
        return False

    async def run(self, ctx: RunContext, port: InteractionPort) -> None:
        full_path = self.path.resolve()
        self.audit.info(f"parse csv {full_path}")

        try:
            ctx.records = load_records(full_path, self.clock())
        except InputUnavailable as e:
            self.audit.error(f"parse csv failed {full_path}: {e}")
            raise

        for record in ctx.records:
            self.audit.info("read row", record.model_dump(mode="json"))
        self.audit.info(f"parse csv ok {full_path}", {"rows": len(ctx.records)})

        port.show(records_table(ctx.records))
        ctx.continue_run = await port.confirm("Continue?", default=True)
        self.audit.info(f"end parse csv, continue {ctx.continue_run}")
