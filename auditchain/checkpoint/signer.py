"""
Ed25519 keys for checkpoint signing.

Private keys are PKCS8 PEM, written 0600; the public half sits next to it
with a .pub suffix and is what auditors are handed.
"""

import base64
import binascii
import hashlib
import os
from typing import Any, Dict, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..config import Settings
from ..core.canonical import canonical_json_bytes


def _public_pem(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def pubkey_id_for(public_key: Ed25519PublicKey) -> str:
    """Short key identifier: first 16 hex chars of SHA-256 over the public PEM."""
    return hashlib.sha256(_public_pem(public_key)).hexdigest()[:16]


class SigningKey:
    def __init__(self, private_key: Ed25519PrivateKey):
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> "SigningKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def load_from_file(cls, path: str) -> "SigningKey":
        """
        Load private key from PEM file.

        Raises:
            FileNotFoundError: If key file doesn't exist
            ValueError: If the file is not an Ed25519 private key
        """
        with open(path, "rb") as f:
            private_key = serialization.load_pem_private_key(f.read(), password=None)
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"{path} is not an Ed25519 private key")
        return cls(private_key)

    def save_to_file(self, path: str, public_path: Optional[str] = None) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        private_pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(private_pem)
        if public_path:
            with open(public_path, "wb") as f:
                f.write(self.get_public_key_pem())

    def sign_base64(self, payload: Dict[str, Any]) -> str:
        """Sign the canonical JSON of payload; returns a base64 signature."""
        signature = self.private_key.sign(canonical_json_bytes(payload))
        return base64.b64encode(signature).decode("ascii")

    def get_pubkey_id(self) -> str:
        return pubkey_id_for(self.public_key)

    def get_public_key_pem(self) -> bytes:
        return _public_pem(self.public_key)


class VerifyingKey:
    def __init__(self, public_key: Ed25519PublicKey):
        self.public_key = public_key

    @classmethod
    def load_from_file(cls, path: str) -> "VerifyingKey":
        with open(path, "rb") as f:
            public_key = serialization.load_pem_public_key(f.read())
        if not isinstance(public_key, Ed25519PublicKey):
            raise ValueError(f"{path} is not an Ed25519 public key")
        return cls(public_key)

    @classmethod
    def from_signing_key(cls, signing_key: SigningKey) -> "VerifyingKey":
        return cls(signing_key.public_key)

    def verify_base64(self, payload: Dict[str, Any], signature_b64: str) -> bool:
        """
        Check a base64 signature over the canonical JSON of payload.

        Returns:
            True if valid; False for a bad signature or undecodable base64
        """
        try:
            signature = base64.b64decode(signature_b64, validate=True)
            self.public_key.verify(signature, canonical_json_bytes(payload))
        except (InvalidSignature, binascii.Error, ValueError):
            return False
        return True

    def get_pubkey_id(self) -> str:
        return pubkey_id_for(self.public_key)


def ensure_keypair(key_path: Optional[str] = None) -> Tuple[str, str]:
    """
    Generate a keypair at key_path unless one exists.

    Args:
        key_path: Private key path (default: AUDITCHAIN_SIGNING_KEY)

    Returns:
        (private_key_path, public_key_path)
    """
    if key_path is None:
        key_path = Settings.from_env().signing_key_path
    public_key_path = key_path + ".pub"
    if not os.path.exists(key_path):
        SigningKey.generate().save_to_file(key_path, public_key_path)
    return key_path, public_key_path
