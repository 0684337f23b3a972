"""
Checkpoint verification.

Two levels:
- signature: the anchor is authentic (signed by the expected key)
- full: signature, then the anchored entry is re-hashed from the live log
  and compared with head_hash. This is what catches an edit to the entry
  that was newest when the anchor was taken.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.errors import AuditStoreError
from ..log.integrity import compute_hash
from ..log.store import AuditStore
from ..metrics import track_checkpoint_verify_failure
from .model import ChainCheckpoint
from .signer import VerifyingKey

logger = logging.getLogger(__name__)


@dataclass
class CheckpointVerification:
    valid: bool
    signature_valid: bool = False
    head_hash_valid: bool = False
    computed_head_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "signatureValid": self.signature_valid,
            "headHashValid": self.head_hash_valid,
            "computedHeadHash": self.computed_head_hash,
            "error": self.error,
        }


def _failed(result: CheckpointVerification) -> CheckpointVerification:
    track_checkpoint_verify_failure()
    logger.warning("Checkpoint verification failed: %s", result.error)
    return result


def verify_signature(checkpoint: ChainCheckpoint, verifying_key: VerifyingKey) -> CheckpointVerification:
    expected_pubkey_id = verifying_key.get_pubkey_id()
    if checkpoint.pubkey_id != expected_pubkey_id:
        return _failed(
            CheckpointVerification(
                valid=False,
                error=f"Public key ID mismatch: expected {expected_pubkey_id}, got {checkpoint.pubkey_id}",
            )
        )
    if not verifying_key.verify_base64(checkpoint.signing_payload(), checkpoint.signature):
        return _failed(CheckpointVerification(valid=False, error="Invalid signature"))
    return CheckpointVerification(valid=True, signature_valid=True)


def verify_checkpoint(
    checkpoint: ChainCheckpoint,
    verifying_key: VerifyingKey,
    store: Optional[AuditStore] = None,
) -> CheckpointVerification:
    """
    Verify an anchor; with a store, also re-check the anchored entry.

    Storage failures are reported in the result, not raised.
    """
    result = verify_signature(checkpoint, verifying_key)
    if not result.signature_valid or store is None:
        return result

    try:
        entry = store.get(checkpoint.entry_id)
    except AuditStoreError as ex:
        return _failed(CheckpointVerification(valid=False, signature_valid=True, error=str(ex)))
    if entry is None:
        return _failed(
            CheckpointVerification(
                valid=False,
                signature_valid=True,
                error=f"Entry {checkpoint.entry_id} not found in audit log",
            )
        )

    computed = compute_hash(entry, entry.previous_hash)
    if computed != checkpoint.head_hash:
        return _failed(
            CheckpointVerification(
                valid=False,
                signature_valid=True,
                computed_head_hash=computed,
                error=(
                    f"Head hash mismatch at entry {checkpoint.entry_id}: "
                    f"computed {computed}, anchored {checkpoint.head_hash}"
                ),
            )
        )
    return CheckpointVerification(
        valid=True,
        signature_valid=True,
        head_hash_valid=True,
        computed_head_hash=computed,
    )
