#!/usr/bin/env python3
"""
Models for the dnsmasq configuration engine

This module contains the entities read from and written to the dnsmasq
configuration fragments, plus the read-only lease and status types.
Equality compares persisted fields only: identifiers are derived when a
fragment is parsed and are not stored in the files.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from utils import format_uptime

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('models')

DEFAULT_NETMASK = '255.255.255.0'
DEFAULT_LEASE_DURATION = '12h'
DEFAULT_CACHE_SIZE = 150

# DNS record kinds
RECORD_A = 'A'
RECORD_AAAA = 'AAAA'
RECORD_CNAME = 'CNAME'
RECORD_MX = 'MX'
RECORD_TXT = 'TXT'
RECORD_SRV = 'SRV'
RECORD_PTR = 'PTR'

ADDRESS_KINDS = (RECORD_A, RECORD_AAAA)
OPAQUE_KINDS = (RECORD_MX, RECORD_TXT, RECORD_SRV, RECORD_PTR)

# Service states
STATUS_RUNNING = 'running'
STATUS_STOPPED = 'stopped'
STATUS_UNKNOWN = 'unknown'


class _Entity:
    """Shared equality and repr for the fragment entities."""

    def _fields(self) -> Dict[str, Any]:
        data = self.to_dict()
        data.pop('id', None)
        return data

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._fields() == other._fields()

    def __repr__(self):
        return f"{type(self).__name__}({self.to_dict()!r})"

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


class OptionCode:
    """A DHCP option identifier, either a numeric code or a symbolic name."""

    @staticmethod
    def parse(text: Union[str, int, 'OptionCode']) -> 'OptionCode':
        """Build the right variant from file text, an int or an existing code."""
        if isinstance(text, OptionCode):
            return text
        if isinstance(text, int):
            return NumericOptionCode(text)
        text = str(text).strip()
        if text.isdigit():
            return NumericOptionCode(int(text))
        return NamedOptionCode(text)

    def __eq__(self, other):
        return type(other) is type(self) and str(other) == str(self)

    def __hash__(self):
        return hash(str(self))

    def __repr__(self):
        return f"{type(self).__name__}({str(self)!r})"


class NumericOptionCode(OptionCode):
    """Option given by number, e.g. 3 for the router."""

    def __init__(self, number: int):
        self.number = int(number)

    def __str__(self):
        return str(self.number)


class NamedOptionCode(OptionCode):
    """Option given by name, e.g. option:router."""

    def __init__(self, name: str):
        self.name = name

    def __str__(self):
        return self.name


class DhcpRange(_Entity):
    """An address pool handed out by the DHCP server."""

    def __init__(self, id: str, start_ip: str, end_ip: str, netmask: Optional[str] = None,
                 lease_time: str = DEFAULT_LEASE_DURATION, tag: Optional[str] = None,
                 active: bool = True):
        self.id = id
        self.start_ip = start_ip
        self.end_ip = end_ip
        self.netmask = netmask or DEFAULT_NETMASK
        self.lease_time = lease_time or DEFAULT_LEASE_DURATION
        self.tag = tag or None
        self.active = active

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'start_ip': self.start_ip,
            'end_ip': self.end_ip,
            'netmask': self.netmask,
            'lease_time': self.lease_time,
            'tag': self.tag,
            'active': self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DhcpRange':
        return cls(
            id=data.get('id', ''),
            start_ip=data.get('start_ip', ''),
            end_ip=data.get('end_ip', ''),
            netmask=data.get('netmask'),
            lease_time=data.get('lease_time') or DEFAULT_LEASE_DURATION,
            tag=data.get('tag'),
            active=data.get('active', True) is not False,
        )


class DhcpOption(_Entity):
    """A DHCP option sent to clients, optionally scoped by tag."""

    def __init__(self, id: str, code: Union[OptionCode, int, str], value: str,
                 tag: Optional[str] = None, active: bool = True, force: bool = False):
        self.id = id
        self.code = OptionCode.parse(code)
        self.value = value
        self.tag = tag or None
        self.active = active
        self.force = force

    def to_dict(self) -> Dict[str, Any]:
        code = self.code.number if isinstance(self.code, NumericOptionCode) else str(self.code)
        return {
            'id': self.id,
            'code': code,
            'value': self.value,
            'tag': self.tag,
            'active': self.active,
            'force': self.force,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DhcpOption':
        return cls(
            id=data.get('id', ''),
            code=data.get('code', ''),
            value=data.get('value', ''),
            tag=data.get('tag'),
            active=data.get('active', True) is not False,
            force=bool(data.get('force', False)),
        )


class StaticReservation(_Entity):
    """A permanent MAC to IP binding."""

    def __init__(self, id: Optional[str], mac_address: str, ip_address: str,
                 hostname: Optional[str] = None, tag: Optional[str] = None):
        self.mac_address = mac_address.lower()
        self.id = id or reservation_id(self.mac_address)
        self.ip_address = ip_address
        self.hostname = hostname or None
        self.tag = tag or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'mac_address': self.mac_address,
            'ip_address': self.ip_address,
            'hostname': self.hostname,
            'tag': self.tag,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StaticReservation':
        return cls(
            id=data.get('id'),
            mac_address=data.get('mac_address', ''),
            ip_address=data.get('ip_address', ''),
            hostname=data.get('hostname'),
            tag=data.get('tag'),
        )


def reservation_id(mac_address: str) -> str:
    """Reservation ids are derived from the MAC so they survive a re-read."""
    return f"static-{mac_address.lower().replace(':', '')}"


class DnsRecord(_Entity):
    """
    A DNS record.

    Address records (A/AAAA) live in the hosts file and may carry a list of
    aliases. CNAME records whose target is not a known address record stand
    alone. MX/TXT/SRV/PTR records are carried as opaque values.
    """

    def __init__(self, id: str, kind: str, name: str, value: str,
                 aliases: Optional[List[str]] = None):
        self.id = id
        self.kind = kind.upper()
        self.name = name
        self.value = value
        self.aliases = list(aliases or [])

    @property
    def is_address(self) -> bool:
        return self.kind in ADDRESS_KINDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind,
            'name': self.name,
            'value': self.value,
            'aliases': list(self.aliases),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DnsRecord':
        return cls(
            id=data.get('id', ''),
            kind=data.get('kind', RECORD_A),
            name=data.get('name', ''),
            value=data.get('value', ''),
            aliases=data.get('aliases'),
        )


class AdvancedSettings(_Entity):
    """General daemon settings, rewritten wholesale on every store write."""

    BOOLEAN_DIRECTIVES = {
        'expand_hosts': 'expand-hosts',
        'no_resolv': 'no-resolv',
        'no_hosts': 'no-hosts',
        'stop_dns_rebind': 'stop-dns-rebind',
        'rebind_localhost_ok': 'rebind-localhost-ok',
        'dhcp_authoritative': 'dhcp-authoritative',
        'bind_interfaces': 'bind-interfaces',
        'log_queries': 'log-queries',
        'log_dhcp': 'log-dhcp',
        'no_daemon': 'no-daemon',
    }

    def __init__(self, domain_name: Optional[str] = None, log_facility: Optional[str] = None,
                 upstream_servers: Optional[List[str]] = None, interfaces: Optional[List[str]] = None,
                 cache_size: int = DEFAULT_CACHE_SIZE, neg_ttl: Optional[int] = None,
                 local_ttl: Optional[int] = None, **flags):
        self.domain_name = domain_name or None
        self.log_facility = log_facility or None
        self.upstream_servers = list(upstream_servers or [])
        self.interfaces = list(interfaces or [])
        self.cache_size = cache_size
        self.neg_ttl = neg_ttl
        self.local_ttl = local_ttl

        unknown = set(flags) - set(self.BOOLEAN_DIRECTIVES)
        if unknown:
            raise TypeError(f"Unknown settings: {', '.join(sorted(unknown))}")
        for attr in self.BOOLEAN_DIRECTIVES:
            setattr(self, attr, bool(flags.get(attr, False)))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'domain_name': self.domain_name,
            'log_facility': self.log_facility,
            'upstream_servers': list(self.upstream_servers),
            'interfaces': list(self.interfaces),
            'cache_size': self.cache_size,
            'neg_ttl': self.neg_ttl,
            'local_ttl': self.local_ttl,
        }
        for attr in self.BOOLEAN_DIRECTIVES:
            data[attr] = getattr(self, attr)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdvancedSettings':
        flags = {attr: bool(data.get(attr, False)) for attr in cls.BOOLEAN_DIRECTIVES}
        return cls(
            domain_name=data.get('domain_name'),
            log_facility=data.get('log_facility'),
            upstream_servers=data.get('upstream_servers'),
            interfaces=data.get('interfaces'),
            cache_size=int(data.get('cache_size') or DEFAULT_CACHE_SIZE),
            neg_ttl=_optional_int(data.get('neg_ttl')),
            local_ttl=_optional_int(data.get('local_ttl')),
            **flags
        )


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    return int(value)


class AggregateConfig:
    """Everything the engine manages, as one in-memory model."""

    def __init__(self, settings: Optional[AdvancedSettings] = None,
                 ranges: Optional[List[DhcpRange]] = None,
                 options: Optional[List[DhcpOption]] = None,
                 reservations: Optional[List[StaticReservation]] = None,
                 dns_records: Optional[List[DnsRecord]] = None):
        self.settings = settings or AdvancedSettings()
        self.ranges = list(ranges or [])
        self.options = list(options or [])
        self.reservations = list(reservations or [])
        self.dns_records = list(dns_records or [])

    def __eq__(self, other):
        if not isinstance(other, AggregateConfig):
            return NotImplemented
        return (self.settings == other.settings and self.ranges == other.ranges
                and self.options == other.options and self.reservations == other.reservations
                and self.dns_records == other.dns_records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'settings': self.settings.to_dict(),
            'ranges': [r.to_dict() for r in self.ranges],
            'options': [o.to_dict() for o in self.options],
            'reservations': [r.to_dict() for r in self.reservations],
            'dns_records': [r.to_dict() for r in self.dns_records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AggregateConfig':
        return cls(
            settings=AdvancedSettings.from_dict(data.get('settings') or {}),
            ranges=[DhcpRange.from_dict(r) for r in data.get('ranges') or []],
            options=[DhcpOption.from_dict(o) for o in data.get('options') or []],
            reservations=[StaticReservation.from_dict(r) for r in data.get('reservations') or []],
            dns_records=[DnsRecord.from_dict(r) for r in data.get('dns_records') or []],
        )


class LeaseRecord:
    """A lease as recorded by the daemon. Read-only from the engine's side."""

    def __init__(self, expiry: Optional[datetime], mac_address: str, ip_address: str,
                 hostname: Optional[str] = None, client_id: Optional[str] = None):
        self.expiry = expiry  # None for an infinite lease
        self.mac_address = mac_address.lower()
        self.ip_address = ip_address
        self.hostname = hostname
        self.client_id = client_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'expiry': self.expiry.isoformat() if self.expiry else None,
            'mac_address': self.mac_address,
            'ip_address': self.ip_address,
            'hostname': self.hostname,
            'client_id': self.client_id,
        }

    def __str__(self) -> str:
        expires = self.expiry.strftime('%Y-%m-%d %H:%M:%S') if self.expiry else 'never'
        return f"MAC: {self.mac_address}, IP: {self.ip_address}, Hostname: {self.hostname}, Expires: {expires}"


class ServiceStatus:
    """Result of a status probe."""

    def __init__(self, state: str, uptime: Optional[timedelta] = None, details: str = ''):
        self.state = state
        self.uptime = uptime
        self.details = details

    @property
    def running(self) -> bool:
        return self.state == STATUS_RUNNING

    def to_dict(self) -> Dict[str, Any]:
        uptime = None
        if self.running:
            uptime = format_uptime(self.uptime) if self.uptime is not None else 'Unknown'
        return {
            'status': self.state,
            'uptime': uptime,
            'details': self.details,
        }

    def __repr__(self):
        return f"ServiceStatus({self.state!r}, uptime={self.uptime!r}, details={self.details!r})"
