"""
IP anonymization applied before events are queued.

Policies:
- none: keep the full address (stored as ip_full)
- cidr: truncate IPv4 to /24 and IPv6 to /48
- hash: salted SHA-256, truncated to a short hex digest
"""

import hashlib
from enum import Enum
from typing import Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

HASH_HEX_LENGTH = 16


class AnonymizationPolicy(str, Enum):
    """Supported anonymization policies."""

    NONE = "none"
    CIDR = "cidr"
    HASH = "hash"


def _truncate_cidr(ip: str) -> str:
    if ":" in ip:
        # IPv6 /48: first three groups
        return ":".join(ip.split(":")[:3]) + "::"

    parts = ip.split(".")
    if len(parts) != 4:
        return ip
    parts[3] = "0"
    return ".".join(parts)


def _hash_ip(ip: str, salt: str) -> str:
    digest = hashlib.sha256((salt + ip).encode("utf-8")).hexdigest()
    return digest[:HASH_HEX_LENGTH]


def anonymize(
    ip: Optional[str],
    policy: AnonymizationPolicy = AnonymizationPolicy.CIDR,
    salt: str = "",
) -> Optional[str]:
    """
    Anonymize an IP address according to policy.

    Never raises: empty input and internal failures both yield None.
    Addresses that are not 4-part IPv4 and contain no ':' are returned
    unchanged under the cidr policy.
    """
    if not ip:
        return None

    try:
        policy = AnonymizationPolicy(policy)
        if policy is AnonymizationPolicy.NONE:
            return ip
        if policy is AnonymizationPolicy.HASH:
            return _hash_ip(ip, salt or "")
        return _truncate_cidr(ip)
    except Exception as e:
        logger.debug("IP anonymization failed", policy=str(policy), error=str(e))
        return None


class Anonymizer:
    """
    Anonymizer bound to one policy and salt.

    Use split() when building event records: it returns the
    (ip_anonymized, ip_full) pair so that at most one of them is set.
    """

    def __init__(self, policy: AnonymizationPolicy = AnonymizationPolicy.CIDR, salt: str = "") -> None:
        self.policy = AnonymizationPolicy(policy)
        self.salt = salt

    def __call__(self, ip: Optional[str]) -> Optional[str]:
        return anonymize(ip, self.policy, self.salt)

    def split(self, ip: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        if self.policy is AnonymizationPolicy.NONE:
            return None, ip or None
        return self(ip), None
