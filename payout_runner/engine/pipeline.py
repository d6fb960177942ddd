"""
Stage pipeline executor.

Runs an ordered list of stages over one RunContext:

  1. Evaluate the stage's skip predicate; skipped stages are audited and passed over
  2. Otherwise run the stage with the context and the interaction port
  3. Stop at the first exception, audit it, and re-raise to the caller

The executor never retries or rolls back. Retrying is a decision each stage
makes for its own remote calls.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Protocol, Sequence, TypeVar

from payout_runner.audit.logger import AuditLog
from payout_runner.engine.errors import WorkflowError
from payout_runner.models.records import RunContext

logger = logging.getLogger("payout_runner.pipeline")

T = TypeVar("T")


class InteractionPort(Protocol):
    """Operator-facing prompts. Stages never read stdin directly."""

    async def confirm(self, message: str, default: bool = True) -> bool:
        ...

    async def select(self, message: str, choices: Sequence[tuple[T, str]]) -> T:
        """Pick one value out of ``(value, label)`` pairs."""
        ...

    def show(self, renderable: Any) -> None:
        ...


class Stage(ABC):
    """One step of the workflow. Subclasses skip themselves once the run stops."""

    title: str = ""

    def __init__(self, audit: AuditLog):
        self.audit = audit

    def should_skip(self, ctx: RunContext) -> bool:
        return not ctx.continue_run

    @abstractmethod
    async def run(self, ctx: RunContext, port: InteractionPort) -> None:
        ...


class PipelineExecutor:
    def __init__(self, stages: Sequence[Stage], port: InteractionPort, audit: AuditLog):
        self.stages = list(stages)
        self.port = port
        self.audit = audit

    async def run(self, ctx: RunContext) -> RunContext:
        for index, stage in enumerate(self.stages, start=1):
            if stage.should_skip(ctx):
                self.audit.info(f"skip stage {stage.title}", {"continue": ctx.continue_run})
                logger.info("Stage %d/%d skipped: %s", index, len(self.stages), stage.title)
                continue

            logger.info("Stage %d/%d: %s", index, len(self.stages), stage.title)
            self.audit.info(f"begin stage {stage.title}")
            try:
                await stage.run(ctx, self.port)
            except WorkflowError as e:
                self.audit.error(f"stage {stage.title} failed", {"code": e.code, "error": str(e)})
                raise
            except Exception as e:
                self.audit.error(f"stage {stage.title} failed unexpectedly", {"error": repr(e)})
                raise
            self.audit.info(f"end stage {stage.title}, continue {ctx.continue_run}")

        return ctx
