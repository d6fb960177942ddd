"""Application configuration via environment variables."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    currency: str = "USDT"
    home_dir: Path = Path.home() / ".payout_execute"
    log_level: str = "INFO"

    binance_api_url: str = "https://api.binance.com"
    binance_pay_api_url: str = "https://bpay.binanceapi.com"
    telegram_api_url: str = "https://api.telegram.org"
    http_timeout_s: float = 20.0

    poll_error_backoff_s: float = 120.0  # wait after a failed status query
    poll_pending_backoff_s: float = 10.0  # wait after ACCEPTED / PROCESSING
    poll_max_attempts: Optional[int] = None  # None = poll until terminal
    poll_deadline_s: Optional[float] = None
    balance_query_retries: int = 2

    mock_failure_rate: float = 0.0  # sandbox gateways only
    mock_latency_ms: int = 100
    mock_processing_polls: int = 2  # PROCESSING answers before the sandbox batch settles

    model_config = {
        "env_prefix": "PAYOUT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
