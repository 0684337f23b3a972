"""
External anchoring of the audit chain head.

Provides:
- ChainCheckpoint model with canonical signing payload
- Ed25519 signing and verification
- Local (write-once files) and S3 checkpoint storage
"""

from .anchor import create_checkpoint
from .model import CHECKPOINT_VERSION, ChainCheckpoint
from .s3_store import S3CheckpointStore
from .signer import SigningKey, VerifyingKey, ensure_keypair
from .store import CheckpointStore
from .verify import CheckpointVerification, verify_checkpoint, verify_signature

__all__ = [
    "CHECKPOINT_VERSION",
    "ChainCheckpoint",
    "CheckpointStore",
    "CheckpointVerification",
    "S3CheckpointStore",
    "SigningKey",
    "VerifyingKey",
    "create_checkpoint",
    "ensure_keypair",
    "verify_checkpoint",
    "verify_signature",
]
