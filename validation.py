#!/usr/bin/env python3
"""
Validation for entities before they are persisted

Format checks raise ValidationError naming the offending field. Uniqueness
checks run against the whole in-memory aggregate and raise ConflictError.
Nothing here mutates its arguments.
"""

import re
import ipaddress
import logging
from typing import Iterable, List, Optional

from domain_names import name_key
from errors import ConflictError, ValidationError
from models import (DhcpOption, DhcpRange, DnsRecord, NumericOptionCode, StaticReservation,
                    RECORD_A, RECORD_AAAA, RECORD_CNAME, ADDRESS_KINDS, OPAQUE_KINDS)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('validation')

MAC_PATTERN = re.compile(r'^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$')
IPV4_PATTERN = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$')
HOSTNAME_PATTERN = re.compile(r'^[a-zA-Z0-9]([a-zA-Z0-9\-.]{0,253}[a-zA-Z0-9])?$')
DNS_NAME_PATTERN = re.compile(
    r'^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)*$')
LEASE_DURATION_PATTERN = re.compile(r'^(\d+[smhdw]?|infinite)$')
TAG_PATTERN = re.compile(r'^[A-Za-z0-9_.\-]+$')
OPTION_NAME_PATTERN = re.compile(r'^(option6?:)?[a-z0-9][a-z0-9\-]*$')

MIN_OPTION_CODE = 1
MAX_OPTION_CODE = 254


def is_valid_mac(mac_address: str) -> bool:
    return bool(mac_address) and MAC_PATTERN.match(mac_address) is not None


def is_valid_ipv4(ip_address: str) -> bool:
    return bool(ip_address) and IPV4_PATTERN.match(ip_address) is not None


def is_valid_ipv6(ip_address: str) -> bool:
    try:
        ipaddress.IPv6Address(ip_address)
        return True
    except ValueError:
        return False


def is_valid_hostname(hostname: str) -> bool:
    return bool(hostname) and HOSTNAME_PATTERN.match(hostname) is not None


def validate_mac(mac_address: str, field: str = 'mac_address') -> None:
    if not is_valid_mac(mac_address):
        raise ValidationError(field, 'Invalid MAC address format. Expected format: XX:XX:XX:XX:XX:XX')


def validate_ipv4(ip_address: str, field: str = 'ip_address') -> None:
    if not is_valid_ipv4(ip_address):
        raise ValidationError(field, f'Invalid IP address format: {ip_address!r}')


def validate_hostname(hostname: Optional[str], field: str = 'hostname') -> None:
    """Hostnames are optional; when present they must be well formed."""
    if hostname and not is_valid_hostname(hostname):
        raise ValidationError(
            field, 'Invalid hostname format. Use only letters, numbers, hyphens, and periods.')


def validate_tag(tag: Optional[str], field: str = 'tag') -> None:
    if tag and not TAG_PATTERN.match(tag):
        raise ValidationError(field, f'Invalid tag: {tag!r}')


def validate_reservation(reservation: StaticReservation) -> None:
    validate_mac(reservation.mac_address)
    validate_ipv4(reservation.ip_address)
    validate_hostname(reservation.hostname)
    validate_tag(reservation.tag)


def validate_range(dhcp_range: DhcpRange) -> None:
    validate_ipv4(dhcp_range.start_ip, 'start_ip')
    validate_ipv4(dhcp_range.end_ip, 'end_ip')
    validate_ipv4(dhcp_range.netmask, 'netmask')
    if not LEASE_DURATION_PATTERN.match(dhcp_range.lease_time or ''):
        raise ValidationError(
            'lease_time', f"Invalid lease duration {dhcp_range.lease_time!r}: use e.g. 12h, 45m or 'infinite'")
    if _octets(dhcp_range.start_ip) > _octets(dhcp_range.end_ip):
        raise ValidationError('end_ip', 'End address must not be lower than start address')
    validate_tag(dhcp_range.tag)


def _octets(ip_address: str) -> List[int]:
    return [int(octet) for octet in ip_address.split('.')]


def validate_option(option: DhcpOption) -> None:
    code = option.code
    if isinstance(code, NumericOptionCode):
        if not MIN_OPTION_CODE <= code.number <= MAX_OPTION_CODE:
            raise ValidationError(
                'code', f'Option code must be between {MIN_OPTION_CODE} and {MAX_OPTION_CODE}')
    elif not OPTION_NAME_PATTERN.match(str(code)):
        raise ValidationError('code', f'Invalid option name: {code}')
    if option.value is None or '\n' in option.value:
        raise ValidationError('value', 'Option value must be a single line')
    validate_tag(option.tag)


def validate_dns_record(record: DnsRecord) -> None:
    """Validate a DNS record and the names of its aliases."""
    if record.kind in OPAQUE_KINDS:
        # Carried through untouched, dnsmasq checks these itself
        if not record.name or '\n' in record.name + record.value:
            raise ValidationError('name', 'DNS record needs a name and must fit on a single line')
        return
    if not record.name or not record.value:
        raise ValidationError('name', 'DNS record name and value are required')
    if not DNS_NAME_PATTERN.match(record.name):
        raise ValidationError('name', f'Invalid hostname format: {record.name!r}')

    if record.kind == RECORD_A:
        validate_ipv4(record.value, 'value')
    elif record.kind == RECORD_AAAA:
        if not is_valid_ipv6(record.value):
            raise ValidationError('value', f'Invalid IPv6 address format: {record.value!r}')
    elif record.kind == RECORD_CNAME:
        if not DNS_NAME_PATTERN.match(record.value):
            raise ValidationError('value', f'Invalid alias target: {record.value!r}')
    else:
        raise ValidationError('kind', f'Unsupported DNS record type: {record.kind}')

    if record.aliases and record.kind not in ADDRESS_KINDS:
        raise ValidationError('aliases', 'Only address records can carry aliases')
    for alias in record.aliases:
        if not DNS_NAME_PATTERN.match(alias):
            raise ValidationError('aliases', f'Invalid alias name: {alias!r}')


def check_reservation_conflicts(reservations: Iterable[StaticReservation],
                                candidate: StaticReservation,
                                exclude_id: Optional[str] = None) -> None:
    """Raise ConflictError if the candidate's MAC or IP is already reserved."""
    mac = candidate.mac_address.lower()
    for existing in reservations:
        if exclude_id is not None and existing.id == exclude_id:
            continue
        if existing.mac_address.lower() == mac:
            raise ConflictError(f'A reservation already exists for MAC address {candidate.mac_address}')
        if existing.ip_address == candidate.ip_address:
            raise ConflictError(f'A reservation already exists for IP address {candidate.ip_address}')


def check_unique_reservations(reservations: List[StaticReservation]) -> None:
    """Whole-collection MAC/IP uniqueness, run immediately before a write."""
    macs = {}
    ips = {}
    for reservation in reservations:
        mac = reservation.mac_address.lower()
        if mac in macs:
            raise ConflictError(f'Duplicate reservation for MAC address {reservation.mac_address}')
        if reservation.ip_address in ips:
            raise ConflictError(
                f'Duplicate reservation for IP address {reservation.ip_address} '
                f'({ips[reservation.ip_address]} and {mac})')
        macs[mac] = reservation.ip_address
        ips[reservation.ip_address] = mac


def dns_names(records: Iterable[DnsRecord], local_domain: Optional[str] = None) -> List[str]:
    """
    Every name a record set claims, aliases included. Opaque records may repeat.

    Names are compared as they are stored, so 'www' and 'www.<local domain>'
    are the same name.
    """
    names = []
    for record in records:
        if record.kind in OPAQUE_KINDS:
            continue
        names.append(name_key(record.name, local_domain))
        names.extend(name_key(alias, local_domain) for alias in record.aliases)
    return names


def check_unique_dns_names(records: List[DnsRecord], local_domain: Optional[str] = None) -> None:
    seen = set()
    for name in dns_names(records, local_domain):
        if name in seen:
            raise ConflictError(f"DNS record with hostname '{name}' already exists")
        seen.add(name)
