from datetime import datetime, timezone


def now_iso() -> str:
    """UTC timestamp in the millisecond ISO-8601 form the web client writes.

    Stored timestamps are strings, so lexical order must match
    chronological order: always UTC, always the same width.
    """
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
