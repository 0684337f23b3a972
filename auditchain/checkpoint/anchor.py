"""
Anchor creation: sign the current chain head.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from ..core.canonical import format_timestamp
from ..core.clock import SystemClock
from ..core.errors import IntegrityError
from ..log.integrity import compute_hash
from ..log.store import AuditStore
from .model import CHECKPOINT_VERSION, ChainCheckpoint
from .signer import SigningKey

logger = logging.getLogger(__name__)


def create_checkpoint(
    store: AuditStore,
    signing_key: SigningKey,
    clock=None,
    meta: Optional[Dict[str, Any]] = None,
) -> ChainCheckpoint:
    """
    Sign the digest of the current tail.

    The result should be shipped somewhere the audit database's operators
    cannot rewrite (CheckpointStore on separate storage, S3CheckpointStore).

    Raises:
        IntegrityError: If the log is empty
    """
    tail = store.tail()
    if tail is None:
        raise IntegrityError("cannot anchor an empty audit log")

    unsigned = ChainCheckpoint(
        version=CHECKPOINT_VERSION,
        entry_id=tail.id,
        head_hash=compute_hash(tail, tail.previous_hash),
        created_at=format_timestamp((clock or SystemClock()).now()),
        pubkey_id=signing_key.get_pubkey_id(),
        meta=dict(meta or {}),
    )
    checkpoint = replace(unsigned, signature=signing_key.sign_base64(unsigned.signing_payload()))
    logger.info("Anchored audit chain at entry %d (%s)", checkpoint.entry_id, checkpoint.head_hash[:16])
    return checkpoint
