"""
Hash chain calculator.

Implements tamper-evident logging using cryptographic hash chains. Each
stored entry carries previous_hash, the digest of its predecessor computed
over the predecessor's fields and the predecessor's own previous_hash:

    entry[0].previous_hash == ""
    entry[i].previous_hash == compute_hash(entry[i-1], entry[i-1].previous_hash)

Hash input is the canonical JSON of HASH_FIELDS (keys sorted, no
whitespace, nested metadata keys sorted, null kept distinct from ""),
hashed with SHA-256.

actor_id is not covered: the storage layer permits exactly one mutation,
nulling actor_id when the referenced actor is deleted, and that must not
break the chain. The actor stays bound to the entry through actor_email
and actor_role, and the immutability triggers reject any other actor_id
change.
"""

import hashlib
from typing import Any, Dict, Optional

from ..core.canonical import canonical_json_bytes, format_timestamp
from ..core.entry import WIRE_NAMES, AuditLogEntry

EMPTY_HASH = ""

# Fields covered by the digest. previousHash is supplied by the caller
# (the chaining seed), not read from the entry.
HASH_FIELDS = (
    "id",
    "timestamp",
    "actor_email",
    "actor_role",
    "action",
    "resource_type",
    "resource_id",
    "ip_address",
    "user_agent",
    "request_method",
    "request_path",
    "status",
    "error_code",
    "error_message",
    "metadata",
)


def entry_dict_for_hash(entry: AuditLogEntry, previous_hash: Optional[str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {WIRE_NAMES[name]: getattr(entry, name) for name in HASH_FIELDS}
    data["timestamp"] = format_timestamp(entry.timestamp)
    # Legacy first rows may carry NULL; they chain exactly like ""
    data["previousHash"] = previous_hash or EMPTY_HASH
    return data


def compute_hash(entry: AuditLogEntry, previous_hash: Optional[str]) -> str:
    """
    Compute the chain digest of an entry.

    Pure and deterministic: no I/O, same inputs always give the same digest.
    Used identically by the append path, the verifier and the backfill.

    Args:
        entry: Stored entry (id and timestamp must be assigned)
        previous_hash: The entry's chain seed (its own previous_hash)

    Returns:
        SHA-256 hash as 64-char hex string
    """
    return hashlib.sha256(canonical_json_bytes(entry_dict_for_hash(entry, previous_hash))).hexdigest()


def next_seed(tail: Optional[AuditLogEntry]) -> str:
    """Chain seed for the entry that will follow tail (EMPTY_HASH for an empty log)."""
    if tail is None:
        return EMPTY_HASH
    return compute_hash(tail, tail.previous_hash)
