"""
Test suite for the audit chain.

Focus areas:
- Canonical serialization and hash determinism
- Linear history under concurrent appends
- Tamper detection (and its documented blind spot)
- Storage-level immutability
- Legacy backfill and startup ordering
"""
