"""
Read the payout CSV into PayoutRecords.

Required columns: pool_name, pool_slug, round, telegram, binance_email,
amount, chat_id. Extra columns are ignored.
"""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from payout_runner.engine.errors import InputUnavailable
from payout_runner.models.records import PayoutRecord

logger = logging.getLogger("payout_runner.ingest")

REQUIRED_COLUMNS = ("pool_name", "pool_slug", "round", "telegram", "binance_email", "amount", "chat_id")


def read_rows(path: Path) -> list[dict[str, str]]:
    try:
        with Path(path).open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
            if missing:
                raise InputUnavailable(f"{path}: missing columns {', '.join(missing)}", code="INPUT_INVALID")
            return [{k: (v or "").strip() for k, v in row.items() if k} for row in reader]
    except (OSError, UnicodeDecodeError) as e:
        raise InputUnavailable(f"{path}: {e}") from e


def merchant_send_id(email: str, run_stamp: str) -> str:
    return f"TRANSFER_{email}_{run_stamp}"


def build_records(rows: list[dict[str, Any]], run_started: datetime) -> list[PayoutRecord]:
    """
    Turn raw rows into records with one merchant send id per row.

    Ids derive from the email and the run timestamp; a repeated email gets a
    numeric suffix so every id stays unique within the run.
    """
    if not rows:
        raise InputUnavailable("payout file has no rows", code="INPUT_INVALID")

    run_stamp = run_started.strftime("%Y%m%dT%H%M%S%f")
    seen: dict[str, int] = {}
    records: list[PayoutRecord] = []

    for line_no, row in enumerate(rows, start=2):
        base_id = merchant_send_id(row.get("binance_email", ""), run_stamp)
        seen[base_id] = seen.get(base_id, 0) + 1
        send_id = base_id if seen[base_id] == 1 else f"{base_id}_{seen[base_id]}"

        try:
            records.append(PayoutRecord(merchant_send_id=send_id, **{c: row.get(c) for c in REQUIRED_COLUMNS}))
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise InputUnavailable(f"line {line_no}: invalid {fields}", code="INPUT_INVALID") from e

    logger.info("Parsed %d payout rows", len(records))
    return records


def load_records(path: Path, run_started: datetime) -> list[PayoutRecord]:
    return build_records(read_rows(path), run_started)
