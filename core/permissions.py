"""
Module-level permission constants for role-based access control.

Stored as a list of strings on ``FundMember.permissions`` so new modules can
be added without a schema change.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

DEALS = "DEALS"
INVESTORS = "INVESTORS"
PORTFOLIO = "PORTFOLIO"
CAPITAL = "CAPITAL"
REPORTS = "REPORTS"
SETTINGS = "SETTINGS"
TEAM = "TEAM"

MODULE_PERMISSIONS = (DEALS, INVESTORS, PORTFOLIO, CAPITAL, REPORTS, SETTINGS, TEAM)

DEFAULT_PERMISSIONS: Dict[str, List[str]] = {
    "PRINCIPAL": [DEALS, INVESTORS, PORTFOLIO, CAPITAL, REPORTS, SETTINGS, TEAM],
    "ADMIN": [DEALS, INVESTORS, PORTFOLIO, CAPITAL, REPORTS, SETTINGS, TEAM],
    "CO_PRINCIPAL": [DEALS, INVESTORS, PORTFOLIO, CAPITAL, REPORTS],
    "ADVISOR": [DEALS, PORTFOLIO, REPORTS],
    "ANALYST": [DEALS, PORTFOLIO, REPORTS],
}

FUND_MEMBER_ROLES = tuple(DEFAULT_PERMISSIONS)

# Platform roles that bypass fund membership checks.
ADMIN_ROLES = ("SUPER_ADMIN", "FUND_ADMIN")


def default_permissions_for(member_role: str) -> List[str]:
    return list(DEFAULT_PERMISSIONS.get(member_role, []))


def has_permission(user_role: Optional[str], member_permissions: Optional[Iterable[str]], module: str) -> bool:
    if user_role in ADMIN_ROLES:
        return True
    return module in set(member_permissions or [])


def normalize_permissions(permissions: Iterable[str]) -> List[str]:
    """Uppercase, de-duplicate and drop unknown module names, preserving order."""
    seen: List[str] = []
    for perm in permissions:
        key = str(perm).strip().upper()
        if key in MODULE_PERMISSIONS and key not in seen:
            seen.append(key)
    return seen
