"""
Canonical serialization for deterministic hashing.

Every digest in the audit chain is computed over the output of these
functions, so the encoding must not depend on dict ordering, platform or
the storage driver that produced the values.
"""

import json
from datetime import datetime, timezone
from typing import Any


def format_timestamp(ts: datetime) -> str:
    """
    Render a timestamp in the single form used for hashing.

    Aware values are converted to UTC, naive values are taken as UTC.
    Microsecond precision is always emitted so that a value read back from
    storage hashes identically to the value that was written.
    """
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts.isoformat(timespec="microseconds")


def canonicalize(obj: Any) -> Any:
    """
    Convert arbitrary nested dict/list to canonical form.

    Rules:
    - dict keys sorted alphabetically
    - tuples converted to lists
    - datetimes rendered with format_timestamp()
    - recursive normalization
    """
    if isinstance(obj, dict):
        return {k: canonicalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    if isinstance(obj, datetime):
        return format_timestamp(obj)
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Deterministic JSON bytes for hashing.

    Guarantees:
    - sort_keys=True (secondary safety)
    - separators remove whitespace
    - ensure_ascii=False keeps UTF-8 stable
    - None is encoded as null, so an absent value never collides with ""
    """
    canon = canonicalize(obj)
    s = json.dumps(canon, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def canonical_json_str(obj: Any) -> str:
    """Deterministic JSON string (for display or storage)."""
    return canonical_json_bytes(obj).decode("utf-8")
