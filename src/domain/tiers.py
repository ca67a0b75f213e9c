"""Tier gating shared by every engine.

Engines differ only in where they keep usage state; the rules and messages
live here so both enforce them identically.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from src.core.errors import QuotaError
from src.domain.models import FREE_ENTITLEMENT_DOMAIN, User, UserTier

USAGE_KEYS: tuple[str, ...] = (
    "threat-intelligence",
    "supply-chain-risk",
    "compliance-management",
    "training-awareness",
)

# Historical domain names and camelCase flag keys fold onto the current usage keys
_USAGE_ALIASES: dict[str, str] = {
    "threat-intelligence": "threat-intelligence",
    "ransomware": "threat-intelligence",
    "supply-chain-risk": "supply-chain-risk",
    "supply-chain": "supply-chain-risk",
    "supplyChain": "supply-chain-risk",
    "compliance-management": "compliance-management",
    "privacy": "compliance-management",
    "training-awareness": "training-awareness",
    "sensitive-info": "training-awareness",
    "sensitiveInfo": "training-awareness",
    "cui": "training-awareness",
}

WRONG_DOMAIN_MESSAGE = (
    "Free users can only access the CyberCaution domain. "
    "Please upgrade to access additional domains."
)
ALREADY_USED_MESSAGE = (
    "You have already used your free CyberCaution assessment. "
    "Please upgrade to run additional assessments."
)


def usage_key_for(domain: str) -> str | None:
    return _USAGE_ALIASES.get(domain)


def empty_usage() -> dict[str, bool]:
    return dict.fromkeys(USAGE_KEYS, False)


def usage_from_flags(flags: Mapping[str, bool] | None) -> dict[str, bool]:
    """Fold a stored flag map (any key vintage) onto the fixed usage keys."""
    usage = empty_usage()
    for key, used in (flags or {}).items():
        target = usage_key_for(key)
        if target is not None and used:
            usage[target] = True
    return usage


def usage_from_domains(domains: Iterable[str]) -> dict[str, bool]:
    return usage_from_flags({domain: True for domain in domains})


def requires_entitlement(user: User, domain: str) -> bool:
    """Return True when creating in ``domain`` consumes the free entitlement.

    Raises :class:`QuotaError` when the tier forbids the domain outright.
    """
    if user.tier is not UserTier.FREE:
        return False
    if domain != FREE_ENTITLEMENT_DOMAIN:
        raise QuotaError(WRONG_DOMAIN_MESSAGE)
    return True
