from payout_runner.cli import app

app()
