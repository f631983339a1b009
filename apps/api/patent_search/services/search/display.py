from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, List, Optional

from patent_search.services.search.query import SearchFilter


def format_date(value: Optional[Any]) -> str:
    """Render a date-ish value as YYYY-MM-DD; unparseable input comes back as-is."""
    if not value:
        return ""
    if isinstance(value, datetime):
        return _utc_date(value)
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    return _utc_date(parsed)


def _utc_date(value: datetime) -> str:
    # Offset-aware timestamps show their UTC calendar day
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date().isoformat()


def summarize_filter(flt: SearchFilter) -> str:
    bits: List[str] = []
    if flt.trimmed_keyword:
        bits.append(f'"{flt.trimmed_keyword}"')
    if flt.assignee:
        bits.append(f"assignee: {flt.assignee}")
    if flt.from_date:
        bits.append(f"from: {flt.from_date}")
    if flt.to_date:
        bits.append(f"to: {flt.to_date}")
    return ", ".join(bits) if bits else "no filters"


def page_label(page: int, total_pages: int, total_count: int) -> str:
    noun = "result" if total_count == 1 else "results"
    return f"Page {page} of {total_pages} • {total_count} {noun}"
