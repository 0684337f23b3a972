"""
auditctl - operator CLI for the audit chain

Commands:
- auditctl init - Create schema, backfill legacy chain, install triggers
- auditctl verify chain/immutability - Integrity and enforcement checks
- auditctl log tail/query - Read the audit log
- auditctl checkpoint create/verify - Signed external anchors
"""

from auditchain import __version__

__all__ = ["__version__"]
