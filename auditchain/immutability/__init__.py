"""
Storage-level immutability enforcement for the audit table.
"""

from .enforcer import (
    ACTIVE,
    DELETE_TRIGGER,
    MISSING,
    TRUNCATE_TRIGGER,
    UPDATE_TRIGGER,
    ImmutabilityStatus,
    enforcer_installed,
    install_enforcer,
    uninstall_enforcer,
    verify_immutability_status,
)

__all__ = [
    "ACTIVE",
    "DELETE_TRIGGER",
    "MISSING",
    "TRUNCATE_TRIGGER",
    "UPDATE_TRIGGER",
    "ImmutabilityStatus",
    "enforcer_installed",
    "install_enforcer",
    "uninstall_enforcer",
    "verify_immutability_status",
]
