#!/usr/bin/env python3
"""
Local domain expansion for alias records

dnsmasq only resolves cname= entries by their fully qualified names, so bare
alias names are written with the configured local domain appended and the
domain is removed again when the fragment is read back. Both directions are
idempotent and are no-ops when no local domain is configured.
"""

from typing import Optional


def expand_name(name: str, local_domain: Optional[str]) -> str:
    """Append the local domain to a bare name (one without any '.')."""
    if not local_domain or not name or '.' in name:
        return name
    return f"{name}.{local_domain}"


def strip_name(name: str, local_domain: Optional[str]) -> str:
    """Remove a trailing '.<local_domain>' from a name."""
    if not local_domain or not name:
        return name
    suffix = f".{local_domain}"
    if name.endswith(suffix) and len(name) > len(suffix):
        return name[:-len(suffix)]
    return name


def expand_alias(alias: str, target: str, local_domain: Optional[str]):
    """Expand both sides of an alias record."""
    return expand_name(alias, local_domain), expand_name(target, local_domain)


def strip_alias(alias: str, target: str, local_domain: Optional[str]):
    """Strip the local domain from both sides of an alias record."""
    return strip_name(alias, local_domain), strip_name(target, local_domain)


def name_key(name: str, local_domain: Optional[str]) -> str:
    """Case-insensitive comparison key for a name as it is stored."""
    return strip_name(name.lower(), local_domain.lower() if local_domain else None)
