"""
Runtime configuration from environment variables.

Environment Variables:
    AUDITCHAIN_DATABASE_URL: SQLAlchemy URL - default: sqlite:///audit.db
    AUDITCHAIN_QUEUE_SIZE: Writer queue capacity - default: 10000
    AUDITCHAIN_SUBMIT_TIMEOUT: Seconds a producer may wait to enqueue - default: 2.0
    AUDITCHAIN_VERIFY_BATCH_SIZE: Rows per verifier round trip - default: 1000
    AUDITCHAIN_CHECKPOINT_DIR: Local anchor directory - default: ~/.auditchain/checkpoints
    AUDITCHAIN_SIGNING_KEY: Ed25519 private key for anchors - default: ~/.auditchain/keys/checkpoint_ed25519
    AUDITCHAIN_S3_BUCKET / AUDITCHAIN_S3_PREFIX / AUDITCHAIN_S3_ENDPOINT_URL: S3 anchor store
    AUDITCHAIN_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR - default: INFO
    AUDITCHAIN_LOG_FORMAT: json, text - default: json
    METRICS_ENABLED / METRICS_PORT: Prometheus endpoint
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_HOME = Path.home() / ".auditchain"


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if not val:
        return default
    try:
        parsed = int(val)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _env_float(key: str, default: float) -> float:
    val = os.getenv(key)
    if not val:
        return default
    try:
        parsed = float(val)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///audit.db"
    queue_size: int = 10000
    submit_timeout: float = 2.0
    verify_batch_size: int = 1000
    checkpoint_dir: str = str(_HOME / "checkpoints")
    signing_key_path: str = str(_HOME / "keys" / "checkpoint_ed25519")
    s3_bucket: Optional[str] = None
    s3_prefix: str = "anchors"
    s3_endpoint_url: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "json"
    metrics_enabled: bool = False
    metrics_port: int = 9108

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("AUDITCHAIN_DATABASE_URL", defaults.database_url),
            queue_size=_env_int("AUDITCHAIN_QUEUE_SIZE", defaults.queue_size),
            submit_timeout=_env_float("AUDITCHAIN_SUBMIT_TIMEOUT", defaults.submit_timeout),
            verify_batch_size=_env_int("AUDITCHAIN_VERIFY_BATCH_SIZE", defaults.verify_batch_size),
            checkpoint_dir=os.getenv("AUDITCHAIN_CHECKPOINT_DIR", defaults.checkpoint_dir),
            signing_key_path=os.getenv("AUDITCHAIN_SIGNING_KEY", defaults.signing_key_path),
            s3_bucket=os.getenv("AUDITCHAIN_S3_BUCKET") or None,
            s3_prefix=os.getenv("AUDITCHAIN_S3_PREFIX", defaults.s3_prefix),
            s3_endpoint_url=os.getenv("AUDITCHAIN_S3_ENDPOINT_URL") or None,
            log_level=os.getenv("AUDITCHAIN_LOG_LEVEL", defaults.log_level).upper(),
            log_format=os.getenv("AUDITCHAIN_LOG_FORMAT", defaults.log_format).lower(),
            metrics_enabled=os.getenv("METRICS_ENABLED", "false").lower() == "true",
            metrics_port=_env_int("METRICS_PORT", defaults.metrics_port),
        )
