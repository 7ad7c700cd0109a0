#!/usr/bin/env python3
"""
Error types for the dnsmasq configuration engine

Every failure raised by the engine derives from DnsmasqError so callers
(the Flask routes, scripts) can catch the whole family in one place.
"""

from typing import List, Optional


class DnsmasqError(Exception):
    """Base class for all configuration engine errors."""


class ValidationError(DnsmasqError, ValueError):
    """A field failed format validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class ConflictError(DnsmasqError):
    """A duplicate MAC address, IP address or DNS name."""


class NotFoundError(DnsmasqError, KeyError):
    """Update or delete of something that does not exist."""

    def __str__(self):
        # KeyError would otherwise quote the message
        return str(self.args[0]) if self.args else ''


class StoreIOError(DnsmasqError, OSError):
    """A fragment file could not be read or written."""

    def __init__(self, path: str, message: str, replaced: Optional[List[str]] = None):
        super().__init__(message)
        self.path = path
        self.message = message
        # Fragments already swapped into place when a multi-file write failed
        self.replaced = replaced or []

    def __str__(self):
        return self.message


class ServiceControlError(DnsmasqError):
    """A restart or reload of the daemon failed."""

    def __init__(self, message: str, output: str = ''):
        super().__init__(message)
        self.message = message
        self.output = output

    def __str__(self):
        return self.message


class HandoffTimeoutError(ServiceControlError):
    """The privileged watcher never answered a handoff request."""


class HandoffCancelledError(ServiceControlError):
    """The caller cancelled while waiting for a handoff result."""
