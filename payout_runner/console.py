"""Terminal rendering and the interactive prompt port used by the CLI."""

import asyncio
from typing import Any, Optional, Sequence, TypeVar

from rich import box
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from payout_runner.models.enums import status_value
from payout_runner.models.records import BalanceResult, PayoutRecord

T = TypeVar("T")

console = Console()


def records_table(records: Sequence[PayoutRecord], with_status: bool = False) -> Table:
    table = Table(title="Payout batch" if not with_status else "Payout status")
    if with_status:
        table.add_column("Status", style="bold")
    table.add_column("Pool", style="cyan")
    table.add_column("Investor")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Binance email")

    for r in records:
        row = [r.pool_name, r.telegram, str(r.amount), r.binance_email]
        if with_status:
            row.insert(0, status_value(r.status) or "-")
        table.add_row(*row)
    return table


def balances_table(spot: BalanceResult, funding: BalanceResult, currency: str) -> Table:
    table = Table(box=None, show_header=False, padding=(0, 1), title="Current wallet balances")
    table.add_column(justify="left")
    table.add_column()
    table.add_column(justify="right")
    table.add_column()
    table.add_row("► Spot", ":", str(spot), currency)
    table.add_row("► Funding", ":", str(funding), currency)
    return table


def settings_table(items: Sequence[tuple[str, str]], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in items:
        table.add_row(name, value)
    return table


class RichInteraction:
    """Prompts on the rich console. Blocking reads run in a worker thread."""

    def __init__(self, out: Optional[Console] = None):
        self.console = out or console

    async def confirm(self, message: str, default: bool = True) -> bool:
        return await asyncio.to_thread(Confirm.ask, message, default=default, console=self.console)

    async def select(self, message: str, choices: Sequence[tuple[T, str]]) -> T:
        self.console.print(f"\n[bold]{message}[/bold]")
        for index, (_, label) in enumerate(choices, start=1):
            self.console.print(f"  [cyan]{index}[/cyan]. {label}")
        picked = await asyncio.to_thread(
            Prompt.ask,
            "Choose",
            choices=[str(i) for i in range(1, len(choices) + 1)],
            default="1",
            console=self.console,
        )
        return choices[int(picked) - 1][0]

    def show(self, renderable: Any) -> None:
        self.console.print(renderable)
