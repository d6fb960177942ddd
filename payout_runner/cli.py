"""
Payout Runner CLI.

Transfers a payout batch to investors in five supervised steps:
  1. Scan & extract the CSV file
  2. Verify the Binance Spot & Funding balances
  3. Transfer funds from Spot to Funding
  4. Binance Pay batch payout to each investor
  5. Send Telegram notifications

Usage:
    payout execute --file path/to/payout.csv --api-key *** --secret-key *** \\
        --bpay-api-key *** --bpay-secret-key *** --bot-token ***
"""

import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from pydantic import SecretStr

from payout_runner import __version__
from payout_runner.audit.logger import AuditLog
from payout_runner.config import Settings, settings
from payout_runner.console import RichInteraction, console, settings_table
from payout_runner.credentials import CredentialStore
from payout_runner.engine.polling import PollPolicy
from payout_runner.engine.workflow import RunOutcome, build_stages, run_workflow
from payout_runner.ingest.templates import get_or_create_template
from payout_runner.models.records import Credentials, RunContext
from payout_runner.providers.base import LedgerGateway, NotificationGateway
from payout_runner.providers.binance import BinanceGateway
from payout_runner.providers.mock_provider import MockLedgerGateway, MockNotificationGateway
from payout_runner.providers.telegram import TelegramGateway

app = typer.Typer(
    name="payout",
    help="Execute a supervised Binance Pay payout batch",
    add_completion=False,
)

REQUIRED_CREDENTIALS = ("API_KEY", "SECRET_KEY", "BPAY_API_KEY", "BPAY_SECRET_KEY")


def setup_logging(verbose: bool = False) -> None:
    level = "DEBUG" if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _gateways(cfg: Settings, sandbox: bool) -> tuple[LedgerGateway, NotificationGateway]:
    if sandbox:
        return MockLedgerGateway(), MockNotificationGateway()
    return (
        BinanceGateway(cfg.binance_api_url, cfg.binance_pay_api_url, cfg.http_timeout_s),
        TelegramGateway(cfg.telegram_api_url, cfg.http_timeout_s),
    )


async def _execute(
    ctx: RunContext, file: Path, cfg: Settings, sandbox: bool, log_path: Path, output_path: Path
) -> RunOutcome:
    audit = AuditLog(log_path)
    ledger, notifier = _gateways(cfg, sandbox)
    stages = build_stages(
        audit,
        file,
        ledger,
        notifier,
        policy=PollPolicy.from_settings(cfg),
        balance_query_retries=cfg.balance_query_retries,
    )
    try:
        return await run_workflow(ctx, stages, RichInteraction(), audit, output_path)
    finally:
        await ledger.aclose()
        await notifier.aclose()


@app.command()
def execute(
    file: Path = typer.Option(..., "--file", "-f", help="The path to CSV file"),
    currency: Optional[str] = typer.Option(None, "--currency", "-c", help="The currency to transfer"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Your Binance API Key"),
    secret_key: Optional[str] = typer.Option(None, "--secret-key", help="Your Binance Secret Key"),
    bpay_api_key: Optional[str] = typer.Option(None, "--bpay-api-key", help="Your Binance Pay API Key"),
    bpay_secret_key: Optional[str] = typer.Option(None, "--bpay-secret-key", help="Your Binance Pay Secret Key"),
    bot_token: Optional[str] = typer.Option(None, "--bot-token", help="Your Telegram bot token"),
    sandbox: bool = typer.Option(False, "--sandbox", help="Use simulated wallets, payouts and messaging"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Execute transfer payout to investors."""
    setup_logging(verbose)

    store = CredentialStore(settings.home_dir)
    values = store.resolve(
        currency=currency,
        api_key=api_key,
        secret_key=secret_key,
        bpay_api_key=bpay_api_key,
        bpay_secret_key=bpay_secret_key,
        bot_token=bot_token,
    )
    values["CURRENCY"] = values["CURRENCY"] or settings.currency

    missing = [k.lower().replace("_", "-") for k in REQUIRED_CREDENTIALS if not values[k]]
    if missing and not sandbox:
        console.print(f"[red]Error:[/red] Some flags were not provided nor found in env file: {', '.join(missing)}")
        raise typer.Exit(1)

    if not sandbox:
        store.write(values)
        console.print(f"Env values updated at {store.path}\n")

    ctx = RunContext(
        currency=values["CURRENCY"],
        credentials=Credentials(
            api_key=values["API_KEY"] or "",
            secret_key=SecretStr(values["SECRET_KEY"] or ""),
            pay_api_key=values["BPAY_API_KEY"] or "",
            pay_secret_key=SecretStr(values["BPAY_SECRET_KEY"] or ""),
            bot_token=SecretStr(values["BOT_TOKEN"] or ""),
        ),
        message_template=get_or_create_template(settings.home_dir),
    )

    run_id = int(time.time() * 1000)
    log_path = settings.home_dir / f"history_{run_id}.log"
    output_path = settings.home_dir / f"output_{run_id}.json"

    try:
        outcome = asyncio.run(_execute(ctx, file, settings, sandbox, log_path, output_path))
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[red]Interrupted[/red], the payout may still be processing on Binance")
        _report_paths(log_path, output_path if output_path.exists() else None)
        raise typer.Exit(1)

    if outcome.error is not None:
        console.print(f"\n[red]Error:[/red] {outcome.error}")
    _report_paths(outcome.log_path, outcome.output_path)
    raise typer.Exit(outcome.exit_code)


def _report_paths(log_path: Path, output_path: Optional[Path]) -> None:
    console.print("\nAll done\nDetailed logs and generated data can be found at:\n")
    console.print(f"  ► {log_path}")
    if output_path:
        console.print(f"  ► {output_path}")


@app.command()
def config() -> None:
    """Show current configuration."""
    stored = CredentialStore(settings.home_dir).read()

    def masked(key: str) -> str:
        value = stored.get(key, "")
        return f"{value[:4]}…" if value else "-"

    items = [
        ("Currency", stored.get("CURRENCY", settings.currency)),
        ("Home dir", str(settings.home_dir)),
        ("Binance API", settings.binance_api_url),
        ("Binance Pay API", settings.binance_pay_api_url),
        ("Telegram API", settings.telegram_api_url),
        ("Poll error backoff (s)", str(settings.poll_error_backoff_s)),
        ("Poll pending backoff (s)", str(settings.poll_pending_backoff_s)),
        ("Poll max attempts", str(settings.poll_max_attempts or "unbounded")),
        ("Poll deadline (s)", str(settings.poll_deadline_s or "unbounded")),
        ("API key", masked("API_KEY")),
        ("Binance Pay API key", masked("BPAY_API_KEY")),
        ("Bot token", masked("BOT_TOKEN")),
    ]
    console.print(settings_table(items, title="Payout Runner Configuration"))


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"Payout Runner v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Payout Runner - supervised Binance Pay batch payouts."""


if __name__ == "__main__":
    app()
