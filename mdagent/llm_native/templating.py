from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Mapping

CURRENT_DATE_VARIABLE = "CURRENT_DATE"


def current_utc_date() -> date:
    return datetime.now(timezone.utc).date()


def replace_template_variables(
    template: str,
    variables: Mapping[str, Any] | None = None,
    *,
    today: date | None = None,
) -> str:
    """Replace ``{{name}}`` placeholders literally; ``None`` values leave the placeholder as is."""
    content = str(template or "")
    for key, value in (variables or {}).items():
        if value is None:
            continue
        content = content.replace("{{" + str(key) + "}}", str(value))

    day = today or current_utc_date()
    return content.replace("{{" + CURRENT_DATE_VARIABLE + "}}", day.isoformat())
