"""
Schema setup and legacy chain backfill.
"""

from .backfill import backfill_chain, needs_backfill
from .bootstrap import StartupReport, ensure_schema, initialize_audit_log

__all__ = [
    "StartupReport",
    "backfill_chain",
    "ensure_schema",
    "initialize_audit_log",
    "needs_backfill",
]
