"""
Notification dispatch.

All messages go out concurrently and every send is awaited to completion:
one recipient's failure never cancels or delays the others. Failures are
logged per recipient and collected on the context; record statuses are left
untouched and the stage itself does not fail on delivery errors.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from payout_runner.audit.logger import AuditLog
from payout_runner.engine.errors import NotificationSendFailed
from payout_runner.engine.pipeline import InteractionPort, Stage
from payout_runner.ingest.templates import compile_template, render_message
from payout_runner.models.records import PayoutRecord, RunContext
from payout_runner.providers.base import NotificationGateway

logger = logging.getLogger("payout_runner.stages.notify")


@dataclass
class DeliveryResult:
    merchant_send_id: str
    chat_id: int
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class NotificationStage(Stage):
    title = "Send notification"

    def __init__(self, audit: AuditLog, notifier: NotificationGateway):
        super().__init__(audit)
        self.notifier = notifier

    async def run(self, ctx: RunContext, port: InteractionPort) -> None:
        self.audit.info("compile message")
        template = compile_template(ctx.message_template)
        messages = [(record, render_message(template, record, ctx.currency)) for record in ctx.records]

        self.audit.info("send message", {"count": len(messages)})
        results = await self.dispatch(messages, ctx.credentials.bot_token.get_secret_value())

        ctx.failed_notifications = [r.merchant_send_id for r in results if not r.ok]
        for result in results:
            if not result.ok:
                error = NotificationSendFailed(f"{result.merchant_send_id} chat {result.chat_id}: {result.error}")
                self.audit.error(f"error noti {error}")

        sent = len(results) - len(ctx.failed_notifications)
        logger.info("Notifications sent=%d failed=%d", sent, len(ctx.failed_notifications))
        port.show(f"Sent {sent}/{len(results)}, notifications should show up soon")

    async def dispatch(self, messages: list[tuple[PayoutRecord, str]], bot_token: str) -> list[DeliveryResult]:
        outcomes = await asyncio.gather(
            *(self.notifier.send(text, record.chat_id, bot_token) for record, text in messages),
            return_exceptions=True,
        )
        return [
            DeliveryResult(
                merchant_send_id=record.merchant_send_id,
                chat_id=record.chat_id,
                error=outcome if isinstance(outcome, BaseException) else None,
            )
            for (record, _), outcome in zip(messages, outcomes)
        ]
