"""Move spot funds into the funding wallet ahead of the payout."""

from payout_runner.audit.logger import AuditLog
from payout_runner.engine.errors import TransferFailed
from payout_runner.engine.pipeline import InteractionPort, Stage
from payout_runner.engine.retry import ProviderError
from payout_runner.models.records import RunContext
from payout_runner.providers.base import LedgerGateway


class FundTransferStage(Stage):
    title = "Spot to Funding"

    def __init__(self, audit: AuditLog, ledger: LedgerGateway):
        super().__init__(audit)
        self.ledger = ledger

    def should_skip(self, ctx: RunContext) -> bool:
        return not ctx.continue_run or not ctx.transfer_spot_to_funding

    async def run(self, ctx: RunContext, port: InteractionPort) -> None:
        self.audit.info(f"begin transfer spot to funding, amount {ctx.transfer_amount}")

        try:
            result = await self.ledger.transfer(ctx.currency, ctx.transfer_amount, ctx.credentials)
        except ProviderError as e:
            self.audit.error(f"transfer spot to funding failed {e}")
            raise TransferFailed(str(e)) from e

        if result is None:
            self.audit.error("transfer spot to funding returned no transaction id")
            raise TransferFailed("no transaction id")

        self.audit.info(f"transfer spot to funding ok transaction id {result.transaction_id}")
        port.show(f"[green]Transfer success[/green] ({ctx.transfer_amount} {ctx.currency})")

        ctx.continue_run = await port.confirm("Execute payout?", default=True)
        self.audit.info(f"end transfer spot/funding, continue {ctx.continue_run}")
