"""
Signed anchor of the audit chain head.

The chain verifier cannot see an edit to the newest entry: nothing
downstream holds its digest yet. A checkpoint records that digest
(head_hash = compute_hash(tail, tail.previous_hash)) at entry_id and signs
it, so the record can later be checked against the live table from an
independent copy.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

CHECKPOINT_VERSION = 1


@dataclass(frozen=True)
class ChainCheckpoint:
    """
    Fields:
        version: Format version (currently 1)
        entry_id: Id of the anchored entry (the tail when created)
        head_hash: Chain digest of that entry
        created_at: ISO-8601 UTC time the anchor was taken
        pubkey_id: SHA-256 of the signer's public key (first 16 chars)
        signature: Ed25519 signature over signing_payload() (base64)
        meta: Free-form annotations, not signed
    """
    version: int
    entry_id: int
    head_hash: str
    created_at: str
    pubkey_id: str
    signature: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)

    def signing_payload(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "entry_id": self.entry_id,
            "head_hash": self.head_hash,
            "created_at": self.created_at,
            "pubkey_id": self.pubkey_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.signing_payload()
        data["signature"] = self.signature
        data["meta"] = self.meta
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainCheckpoint":
        return cls(
            version=data["version"],
            entry_id=data["entry_id"],
            head_hash=data["head_hash"],
            created_at=data["created_at"],
            pubkey_id=data["pubkey_id"],
            signature=data.get("signature", ""),
            meta=data.get("meta", {}),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_json(cls, json_str: str) -> "ChainCheckpoint":
        return cls.from_dict(json.loads(json_str))

    @property
    def filename(self) -> str:
        # zero padding keeps lexical order equal to entry order (local and S3)
        return f"cp_{self.entry_id:012d}_{self.head_hash[:8]}.json"
