"""
Tamper-evident audit trail

Append-only, hash-chained audit log for clinical records platforms, with
storage-level immutability enforcement, chain verification and legacy backfill.
"""

__version__ = "0.1.0"
