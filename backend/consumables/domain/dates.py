import re
from datetime import date, datetime
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DATE_SEPARATORS = re.compile(r"[\s./\-]+")


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


def request_no_prefix(moment: datetime) -> str:
    return moment.strftime("%y%m%d")


def to_date_only(value) -> str:
    """Normalize the mixed date representations found in the store to YYYY-MM-DD.

    ISO-prefixed strings pass through; anything else is split on spaces,
    dots, dashes and slashes and reassembled from its first three parts.
    """
    if not value:
        return ""
    text = str(value).strip()
    if _ISO_DATE.match(text):
        return text[:10]
    parts = [part for part in _DATE_SEPARATORS.split(text) if part]
    if len(parts) >= 3:
        year, month, day = parts[:3]
        return f"{year.zfill(4)}-{month.zfill(2)}-{day.zfill(2)}"
    return text[:10]


def parse_date_only(value) -> Optional[date]:
    text = to_date_only(value)
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None
