"""Per-recipient message template, stored next to the credential file."""

from pathlib import Path
from typing import Any

from jinja2 import Environment, Template

from payout_runner.models.records import PayoutRecord

TEMPLATE_FILENAME = "template.jinja"

DEFAULT_TEMPLATE = """\
Hello {{ telegram }},

Great news! Your payout of {{ amount }} {{ currency }} for the {{ pool_name }} pool has been sent and should arrive in your account shortly.

Transaction details:
- Amount: {{ amount }} {{ currency }}
- Order ID: {{ order_id }}

Thank you for your investment!

Best regards,
The {{ pool_name }} Team"""

_env = Environment(autoescape=False, keep_trailing_newline=False)


def get_or_create_template(home_dir: Path) -> str:
    """Return the stored template, writing the default one on first use."""
    path = Path(home_dir) / TEMPLATE_FILENAME
    if path.exists():
        return path.read_text(encoding="utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_TEMPLATE, encoding="utf-8")
    return DEFAULT_TEMPLATE


def compile_template(source: str) -> Template:
    return _env.from_string(source)


def template_fields(record: PayoutRecord, currency: str) -> dict[str, Any]:
    fields = record.model_dump(mode="json")
    fields["currency"] = currency
    return fields


def render_message(template: Template, record: PayoutRecord, currency: str) -> str:
    return template.render(**template_fields(record, currency)).strip()
