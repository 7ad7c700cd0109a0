#!/usr/bin/env python3
"""
Lease Store Reader

Reads the lease file maintained by the dnsmasq daemon. Each line is:

    <expiry unix time> <mac> <ip> [<hostname>] [<client id>]

An expiry of 0 marks an infinite lease and '*' stands for a missing hostname
or client id. The engine never writes this file; every call returns a
point-in-time snapshot.
"""

import os
import logging
from datetime import datetime
from typing import List, Optional

from errors import StoreIOError
from models import LeaseRecord

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('leases')

UNSET_FIELD = '*'


def _optional(field: Optional[str]) -> Optional[str]:
    if not field or field == UNSET_FIELD:
        return None
    return field


def parse_leases(content: str, warnings: Optional[List[str]] = None) -> List[LeaseRecord]:
    """Parse lease file content. Lines with fewer than three fields are skipped."""
    leases = []
    for line_number, raw in enumerate(content.splitlines(), 1):
        parts = raw.split()
        if not parts:
            continue
        if len(parts) < 3:
            _skip(warnings, line_number, raw, 'expected at least <expiry> <mac> <ip>')
            continue

        try:
            timestamp = int(parts[0])
        except ValueError:
            _skip(warnings, line_number, raw, 'invalid expiry timestamp')
            continue

        try:
            expiry = datetime.fromtimestamp(timestamp) if timestamp else None
        except (OverflowError, OSError, ValueError):
            _skip(warnings, line_number, raw, 'expiry timestamp out of range')
            continue

        leases.append(LeaseRecord(
            expiry=expiry,
            mac_address=parts[1],
            ip_address=parts[2],
            hostname=_optional(parts[3] if len(parts) > 3 else None),
            client_id=_optional(parts[4] if len(parts) > 4 else None)
        ))
    return leases


def _skip(warnings: Optional[List[str]], line_number: int, line: str, reason: str) -> None:
    message = f"leases line {line_number}: {reason}: {line!r}"
    logger.debug(f"Skipping {message}")
    if warnings is not None:
        warnings.append(message)


class LeaseReader:
    """Reads the daemon's lease file on demand."""

    def __init__(self, leases_path: str):
        self.leases_path = leases_path

    def read(self) -> List[LeaseRecord]:
        """Return the current leases; a missing file means no leases yet."""
        if not os.path.exists(self.leases_path):
            logger.info(f"DHCP leases file not found: {self.leases_path}")
            return []

        try:
            with open(self.leases_path, 'r') as f:
                content = f.read()
        except OSError as e:
            raise StoreIOError(self.leases_path, f"Could not read leases file {self.leases_path}: {e}") from e

        leases = parse_leases(content)
        logger.debug(f"Parsed {len(leases)} leases from {self.leases_path}")
        return leases

    def find_by_mac(self, mac_address: str) -> Optional[LeaseRecord]:
        """Case-insensitive lookup of a lease by MAC address."""
        mac_address = mac_address.lower()
        for lease in self.read():
            if lease.mac_address == mac_address:
                return lease
        return None
