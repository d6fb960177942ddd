"""
Reusable credentials stored in ``<home_dir>/.env``.

Values given on the command line win over stored ones, and whatever was
resolved is written back so the next run needs no flags.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values, set_key

logger = logging.getLogger("payout_runner.credentials")

CREDENTIAL_KEYS = ("CURRENCY", "API_KEY", "SECRET_KEY", "BPAY_API_KEY", "BPAY_SECRET_KEY", "BOT_TOKEN")


class CredentialStore:
    def __init__(self, home_dir: Path):
        self.path = Path(home_dir) / ".env"

    def _ensure_exists(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(mode=0o600)

    def read(self) -> dict[str, str]:
        self._ensure_exists()
        return {k: v for k, v in dotenv_values(self.path).items() if v}

    def write(self, values: dict[str, Optional[str]]) -> None:
        self._ensure_exists()
        for key, value in values.items():
            if value:
                set_key(str(self.path), key, value, quote_mode="never")
        os.chmod(self.path, 0o600)
        logger.info("Stored %d values in %s", sum(1 for v in values.values() if v), self.path)

    def resolve(self, **flags: Optional[str]) -> dict[str, Optional[str]]:
        """Merge flag values (lowercase keys) over stored values."""
        stored = self.read()
        return {key: flags.get(key.lower()) or stored.get(key) for key in CREDENTIAL_KEYS}
