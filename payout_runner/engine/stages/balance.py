"""
Balance reconciliation.

Decides whether the funding wallet can cover the batch, and whether spot
funds must (or may) be moved over first. Decision table, in order:

  1. funding >= required            -> operator picks: transfer anyway / use funding / exit
  2. funding + spot < required      -> InsufficientFunds, the run aborts
  3. otherwise                      -> operator confirms a spot -> funding transfer

Balances that could not be determined are audited as such and count as zero.
With an undetermined spot balance, case 1 does not offer the transfer.
"""

import logging

from payout_runner.audit.logger import AuditLog
from payout_runner.console import balances_table
from payout_runner.engine.errors import InsufficientFunds
from payout_runner.engine.pipeline import InteractionPort, Stage
from payout_runner.engine.retry import ProviderError, with_retry
from payout_runner.models.enums import FundingChoice
from payout_runner.models.records import BalanceResult, Credentials, RunContext, total_amount
from payout_runner.providers.base import LedgerGateway

logger = logging.getLogger("payout_runner.stages.balance")

FUNDING_CHOICES = [
    (FundingChoice.TRANSFER_SPOT_FUNDING, "Yes, transfer all Spot to Funding"),
    (FundingChoice.USE_FUNDING, "No, use current Funding balance"),
    (FundingChoice.EXIT, "Exit"),
]


class BalanceReconciliationStage(Stage):
    title = "Check Binance Spot & Funding balance"

    def __init__(self, audit: AuditLog, ledger: LedgerGateway, query_retries: int = 2):
        super().__init__(audit)
        self.ledger = ledger
        self.query_retries = query_retries

    async def _query(self, wallet: str, func, currency: str, credentials: Credentials) -> BalanceResult:
        try:
            raw = await with_retry(func, currency, credentials, max_retries=self.query_retries)
        except ProviderError as e:
            self.audit.error(f"get {wallet} balance failed {e}")
            result = BalanceResult.error(str(e))
        else:
            result = BalanceResult.parse(raw)

        if result.is_known:
            self.audit.info(f"{wallet} balance {result.amount}")
        else:
            # Not a confirmed zero; the decision below still counts it as zero
            self.audit.error(
                "balance_unknown",
                {"wallet": wallet, "kind": result.kind.value, "detail": result.detail},
            )
        return result

    async def run(self, ctx: RunContext, port: InteractionPort) -> None:
        ctx.required_total = total_amount(ctx.records)
        self.audit.info(f"sum amount {ctx.required_total}")

        ctx.spot_balance = await self._query("spot", self.ledger.get_spot_balance, ctx.currency, ctx.credentials)
        ctx.funding_balance = await self._query(
            "funding", self.ledger.get_funding_balance, ctx.currency, ctx.credentials
        )
        port.show(balances_table(ctx.spot_balance, ctx.funding_balance, ctx.currency))

        spot = ctx.spot_balance.effective
        funding = ctx.funding_balance.effective
        required = ctx.required_total

        if funding >= required:
            self.audit.info("show transfer option")
            ctx.transfer_spot_to_funding = False
            choices = FUNDING_CHOICES
            if not ctx.spot_balance.is_known:
                # nothing confirmed to move
                choices = [c for c in FUNDING_CHOICES if c[0] is not FundingChoice.TRANSFER_SPOT_FUNDING]
            selection = await port.select(
                f"There is enough balance in Funding to execute payout (need {required}), "
                "do you still want to transfer Spot to Funding anyway?",
                choices,
            )
            ctx.continue_run = selection is not FundingChoice.EXIT
            ctx.transfer_spot_to_funding = selection is FundingChoice.TRANSFER_SPOT_FUNDING
            if ctx.transfer_spot_to_funding:
                ctx.transfer_amount = spot
            self.audit.info(f"selected {selection.value}")

        elif funding + spot < required:
            self.audit.error(
                "not enough balance to execute payout",
                {
                    "spot": str(ctx.spot_balance),
                    "funding": str(ctx.funding_balance),
                    "need": str(required),
                },
            )
            raise InsufficientFunds(
                f"{ctx.currency}, spot: {ctx.spot_balance}, funding: {ctx.funding_balance}, need: {required}"
            )

        else:
            ctx.continue_run = await port.confirm("Transfer all Spot to Funding?", default=True)
            ctx.transfer_spot_to_funding = ctx.continue_run
            if ctx.transfer_spot_to_funding:
                ctx.transfer_amount = spot

        logger.info(
            "Balance check: need=%s spot=%s funding=%s transfer=%s",
            required,
            ctx.spot_balance,
            ctx.funding_balance,
            ctx.transfer_amount if ctx.transfer_spot_to_funding else "no",
        )
        self.audit.info(f"end balance fetch, continue {ctx.continue_run}")
