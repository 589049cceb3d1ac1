from typing import Iterable

SEQUENCE_WIDTH = 4


def next_request_no(prefix: str, existing: Iterable[str]) -> str:
    """Return ``prefix`` followed by one more than the highest suffix in use.

    Gaps and row order are irrelevant; only the maximum matters.
    """
    max_seq = 0
    for request_no in existing:
        text = str(request_no or "").strip()
        if not text.startswith(prefix):
            continue
        suffix = text[len(prefix):]
        if suffix.isdigit():
            max_seq = max(max_seq, int(suffix))
    return f"{prefix}{max_seq + 1:0{SEQUENCE_WIDTH}d}"
