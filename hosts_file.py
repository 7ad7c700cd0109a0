#!/usr/bin/env python3
"""
Hosts File Codec

This module parses and writes the hosts-style fragment that holds the
address (A/AAAA) records served by dnsmasq:

    <IP address><TAB><hostname>

Names after the first on a line are read as aliases of the first; they are
written back to the alias fragment, so this file only ever gets one name per
line. A name that appears on more than one line keeps the address from the
last line.
"""

import logging
import ipaddress
from collections import OrderedDict
from typing import List, Optional

from models import DnsRecord, RECORD_A, RECORD_AAAA

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('hosts_file')


def _record_kind(address: str) -> Optional[str]:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return None
    return RECORD_AAAA if ip.version == 6 else RECORD_A


def parse_hosts(content: str, warnings: Optional[List[str]] = None) -> List[DnsRecord]:
    """Parse hosts file content into address records."""
    records = OrderedDict()  # hostname -> DnsRecord

    for line_number, raw in enumerate(content.splitlines(), 1):
        # Remove comments
        line = raw.split('#', 1)[0].strip()
        if not line:
            continue

        parts = line.split()
        if len(parts) < 2:
            _skip(warnings, line_number, raw, 'expected <address> <hostname>')
            continue

        address, hostname = parts[0], parts[1]
        kind = _record_kind(address)
        if kind is None:
            _skip(warnings, line_number, raw, 'invalid address')
            continue
        aliases = parts[2:]

        if hostname in records:
            logger.debug(f"Hostname {hostname} redefined on line {line_number}, last entry wins")
            records[hostname].value = address
            records[hostname].kind = kind
            records[hostname].aliases = aliases
            continue

        kind_prefix = 'a' if kind == RECORD_A else 'aaaa'
        records[hostname] = DnsRecord(
            id=f"dns-{kind_prefix}-{len(records)}",
            kind=kind,
            name=hostname,
            value=address,
            aliases=aliases
        )

    logger.debug(f"Parsed {len(records)} address records from hosts content")
    return list(records.values())


def _skip(warnings: Optional[List[str]], line_number: int, line: str, reason: str) -> None:
    message = f"hosts line {line_number}: {reason}: {line!r}"
    logger.debug(f"Skipping {message}")
    if warnings is not None:
        warnings.append(message)


def serialize_hosts(records: List[DnsRecord]) -> str:
    """Render address records as hosts file content. Other kinds are ignored."""
    lines = [f"{record.value}\t{record.name}" for record in records if record.is_address]
    if not lines:
        return ''
    return '\n'.join(lines) + '\n'
