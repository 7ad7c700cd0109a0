#!/usr/bin/env python3
"""
Fragment codec for the managed dnsmasq configuration files

Each fragment kind has a parse_* function turning file content into entities
and a serialize_* function doing the reverse, so that
parse(serialize(entities)) == entities up to field defaults.

Parsing is lenient: blank lines, ordinary comments and malformed lines are
skipped. Callers that want to know what was dropped pass a list as
``warnings`` and get one message per skipped line.

Inactive ranges and options are kept in the file as comments:

    # dhcp-range=set:lan,192.168.1.100,192.168.1.200,255.255.255.0,12h (inactive)
"""

import logging
from typing import Dict, List, Optional, Tuple

from models import (AdvancedSettings, DhcpOption, DhcpRange, DnsRecord, StaticReservation,
                    DEFAULT_CACHE_SIZE, DEFAULT_LEASE_DURATION, DEFAULT_NETMASK,
                    RECORD_MX, RECORD_PTR, RECORD_SRV, RECORD_TXT)
from validation import is_valid_ipv4, is_valid_mac

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('fragment_codec')

RANGE_DIRECTIVE = 'dhcp-range'
OPTION_DIRECTIVE = 'dhcp-option'
OPTION_FORCE_DIRECTIVE = 'dhcp-option-force'
HOST_DIRECTIVE = 'dhcp-host'
CNAME_DIRECTIVE = 'cname'

INACTIVE_MARKER = '(inactive)'

# Record directives carried through the alias fragment without interpretation
OPAQUE_DIRECTIVES = {
    'mx-host': RECORD_MX,
    'txt-record': RECORD_TXT,
    'srv-host': RECORD_SRV,
    'ptr-record': RECORD_PTR,
}
OPAQUE_KIND_DIRECTIVES = {kind: directive for directive, kind in OPAQUE_DIRECTIVES.items()}

GENERATED_NOTICE = '# This file is auto-generated, do not edit manually'


def _header(title: str) -> List[str]:
    return [f'# {title} managed by dnsmasq-sync', GENERATED_NOTICE, '']


def _warn(warnings: Optional[List[str]], fragment: str, line_number: int, line: str, reason: str) -> None:
    message = f"{fragment} line {line_number}: {reason}: {line!r}"
    logger.debug(f"Skipping {message}")
    if warnings is not None:
        warnings.append(message)


def _split_directive(line: str) -> Tuple[Optional[str], str]:
    """Split 'key=value' into its parts; bare keywords return an empty value."""
    if '=' not in line:
        return line.strip(), ''
    key, value = line.split('=', 1)
    return key.strip(), value.strip()


def _directive_lines(content: str):
    """
    Yield (line_number, raw_line, body, active) for every candidate line.

    Ordinary comments and blank lines are dropped here. Lines in the inactive
    form are yielded with the comment and marker removed and active=False.
    """
    for line_number, raw in enumerate(content.splitlines(), 1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith('#'):
            body = line[1:].strip()
            if not body.endswith(INACTIVE_MARKER):
                continue
            yield line_number, raw, body[:-len(INACTIVE_MARKER)].strip(), False
        else:
            yield line_number, raw, line, True


def _render(body: str, active: bool) -> str:
    if active:
        return body
    return f"# {body} {INACTIVE_MARKER}"


#
# DHCP ranges
#
def parse_ranges(content: str, warnings: Optional[List[str]] = None) -> List[DhcpRange]:
    """Parse dhcp-range=[set:<tag>,]<start>,<end>[,<netmask>][,<lease>] lines."""
    ranges = []
    for line_number, raw, body, active in _directive_lines(content):
        key, value = _split_directive(body)
        if key != RANGE_DIRECTIVE:
            _warn(warnings, 'ranges', line_number, raw, 'not a dhcp-range directive')
            continue

        parts = [p.strip() for p in value.split(',')]
        tag = None
        if parts and parts[0].startswith('set:'):
            tag = parts.pop(0)[len('set:'):]

        if len(parts) < 2 or not is_valid_ipv4(parts[0]) or not is_valid_ipv4(parts[1]):
            _warn(warnings, 'ranges', line_number, raw, 'expected start and end addresses')
            continue

        start_ip, end_ip = parts[0], parts[1]
        rest = parts[2:]
        netmask = DEFAULT_NETMASK
        if rest and is_valid_ipv4(rest[0]):
            netmask = rest.pop(0)
        lease_time = (rest.pop(0) if rest else '') or DEFAULT_LEASE_DURATION
        if rest:
            _warn(warnings, 'ranges', line_number, raw, 'ignoring trailing fields')

        ranges.append(DhcpRange(
            id=f"range-{len(ranges)}",
            start_ip=start_ip,
            end_ip=end_ip,
            netmask=netmask,
            lease_time=lease_time,
            tag=tag,
            active=active
        ))

    logger.debug(f"Parsed {len(ranges)} DHCP ranges")
    return ranges


def format_range(dhcp_range: DhcpRange) -> str:
    body = f"{RANGE_DIRECTIVE}="
    if dhcp_range.tag:
        body += f"set:{dhcp_range.tag},"
    body += f"{dhcp_range.start_ip},{dhcp_range.end_ip}"
    body += f",{dhcp_range.netmask or DEFAULT_NETMASK}"
    body += f",{dhcp_range.lease_time or DEFAULT_LEASE_DURATION}"
    return _render(body, dhcp_range.active)


def serialize_ranges(ranges: List[DhcpRange]) -> str:
    lines = _header('DHCP ranges')
    lines.extend(format_range(r) for r in ranges)
    return '\n'.join(lines) + '\n'


#
# DHCP options
#
def parse_options(content: str, warnings: Optional[List[str]] = None) -> List[DhcpOption]:
    """Parse dhcp-option[-force]=[tag:<tag>,]<code>,<value> lines."""
    options = []
    for line_number, raw, body, active in _directive_lines(content):
        key, value = _split_directive(body)
        if key not in (OPTION_DIRECTIVE, OPTION_FORCE_DIRECTIVE):
            _warn(warnings, 'options', line_number, raw, 'not a dhcp-option directive')
            continue

        tag = None
        if value.startswith('tag:') and ',' in value:
            tag, value = value.split(',', 1)
            tag = tag[len('tag:'):]

        if ',' not in value:
            _warn(warnings, 'options', line_number, raw, 'expected <code>,<value>')
            continue

        # The value itself may contain commas (e.g. several DNS servers)
        code, option_value = value.split(',', 1)
        code = code.strip()
        if not code:
            _warn(warnings, 'options', line_number, raw, 'missing option code')
            continue

        options.append(DhcpOption(
            id=f"option-{len(options)}",
            code=code,
            value=option_value,
            tag=tag,
            active=active,
            force=(key == OPTION_FORCE_DIRECTIVE)
        ))

    logger.debug(f"Parsed {len(options)} DHCP options")
    return options


def format_option(option: DhcpOption) -> str:
    directive = OPTION_FORCE_DIRECTIVE if option.force else OPTION_DIRECTIVE
    body = f"{directive}="
    if option.tag:
        body += f"tag:{option.tag},"
    body += f"{option.code},{option.value}"
    return _render(body, option.active)


def serialize_options(options: List[DhcpOption]) -> str:
    lines = _header('DHCP options')
    lines.extend(format_option(o) for o in options)
    return '\n'.join(lines) + '\n'


#
# Static reservations
#
def parse_reservations(content: str, warnings: Optional[List[str]] = None) -> List[StaticReservation]:
    """Parse dhcp-host=<mac>,<ip>[,<hostname>][,set:<tag>] lines."""
    reservations = []
    for line_number, raw, body, active in _directive_lines(content):
        key, value = _split_directive(body)
        if key != HOST_DIRECTIVE or not active:
            _warn(warnings, 'reservations', line_number, raw, 'not a dhcp-host directive')
            continue

        parts = [p.strip() for p in value.split(',')]
        if len(parts) < 2 or not is_valid_mac(parts[0]) or not is_valid_ipv4(parts[1]):
            _warn(warnings, 'reservations', line_number, raw, 'expected <mac>,<ip>')
            continue

        hostname = None
        tag = None
        for extra in parts[2:]:
            if extra.startswith('set:'):
                tag = extra[len('set:'):]
            elif extra and hostname is None:
                hostname = extra
            elif extra:
                _warn(warnings, 'reservations', line_number, raw, f'ignoring field {extra!r}')

        reservations.append(StaticReservation(
            id=None,
            mac_address=parts[0],
            ip_address=parts[1],
            hostname=hostname,
            tag=tag
        ))

    logger.debug(f"Parsed {len(reservations)} static reservations")
    return reservations


def format_reservation(reservation: StaticReservation) -> str:
    line = f"{HOST_DIRECTIVE}={reservation.mac_address},{reservation.ip_address}"
    if reservation.hostname:
        line += f",{reservation.hostname}"
    if reservation.tag:
        line += f",set:{reservation.tag}"
    return line


def serialize_reservations(reservations: List[StaticReservation]) -> str:
    lines = _header('Static DHCP leases')
    lines.extend(format_reservation(r) for r in reservations)
    return '\n'.join(lines) + '\n'


#
# Advanced settings
#
def _parse_int(value: str, default: Optional[int], warnings, line_number, raw) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        _warn(warnings, 'advanced', line_number, raw, 'expected an integer')
        return default


def parse_advanced(content: str, warnings: Optional[List[str]] = None) -> AdvancedSettings:
    """Parse the advanced settings fragment into an AdvancedSettings."""
    keyword_to_attr = {directive: attr for attr, directive in AdvancedSettings.BOOLEAN_DIRECTIVES.items()}
    settings = AdvancedSettings()

    for line_number, raw in enumerate(content.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue

        key, value = _split_directive(line)
        if key in keyword_to_attr and '=' not in line:
            setattr(settings, keyword_to_attr[key], True)
        elif key == 'domain':
            settings.domain_name = value or None
        elif key == 'log-facility':
            settings.log_facility = value or None
        elif key == 'server':
            settings.upstream_servers.append(value)
        elif key == 'interface':
            settings.interfaces.append(value)
        elif key == 'cache-size':
            settings.cache_size = _parse_int(value, DEFAULT_CACHE_SIZE, warnings, line_number, raw)
        elif key == 'neg-ttl':
            settings.neg_ttl = _parse_int(value, None, warnings, line_number, raw)
        elif key == 'local-ttl':
            settings.local_ttl = _parse_int(value, None, warnings, line_number, raw)
        elif key == 'conf-file':
            continue  # managed includes, regenerated on write
        else:
            _warn(warnings, 'advanced', line_number, raw, 'unrecognized setting')

    return settings


def serialize_advanced(settings: AdvancedSettings, include_files: Optional[List[str]] = None) -> str:
    """
    Render the advanced settings fragment.

    The file is owned by the engine and regenerated wholesale, so any manual
    edits outside the managed keys are dropped.
    """
    lines = [
        '# DNSmasq advanced configuration managed by dnsmasq-sync',
        '# This section contains general DNS and DHCP settings',
        ''
    ]
    flags = AdvancedSettings.BOOLEAN_DIRECTIVES

    # General
    if settings.domain_name:
        lines.append(f"domain={settings.domain_name}")
    if settings.expand_hosts:
        lines.append(flags['expand_hosts'])

    # Cache
    lines.append(f"cache-size={settings.cache_size if settings.cache_size is not None else DEFAULT_CACHE_SIZE}")
    if settings.neg_ttl is not None:
        lines.append(f"neg-ttl={settings.neg_ttl}")
    if settings.local_ttl is not None:
        lines.append(f"local-ttl={settings.local_ttl}")

    # DNS, DHCP and interface binding
    for attr in ('no_resolv', 'no_hosts', 'stop_dns_rebind', 'rebind_localhost_ok',
                 'dhcp_authoritative', 'bind_interfaces'):
        if getattr(settings, attr):
            lines.append(flags[attr])

    for interface in settings.interfaces:
        lines.append(f"interface={interface}")
    for server in settings.upstream_servers:
        lines.append(f"server={server}")

    # Logging
    for attr in ('log_queries', 'log_dhcp'):
        if getattr(settings, attr):
            lines.append(flags[attr])
    if settings.log_facility:
        lines.append(f"log-facility={settings.log_facility}")

    if settings.no_daemon:
        lines.append(flags['no_daemon'])

    if include_files:
        lines.append('')
        lines.append('# Include managed configuration files')
        lines.extend(f"conf-file={path}" for path in include_files)

    return '\n'.join(lines) + '\n'


#
# Alias (cname) records and opaque record directives
#
def parse_aliases(content: str, warnings: Optional[List[str]] = None
                  ) -> Tuple[List[Tuple[str, str]], List[DnsRecord]]:
    """
    Parse the alias fragment.

    Returns the (alias, target) pairs from cname= lines exactly as written
    (domain handling is the store's job) and the opaque records.
    """
    pairs = []
    opaque = []
    counters: Dict[str, int] = {}

    for line_number, raw in enumerate(content.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue

        key, value = _split_directive(line)
        if key == CNAME_DIRECTIVE:
            parts = [p.strip() for p in value.split(',')]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                _warn(warnings, 'aliases', line_number, raw, 'expected <alias>,<target>')
                continue
            pairs.append((parts[0], parts[1]))
        elif key in OPAQUE_DIRECTIVES:
            kind = OPAQUE_DIRECTIVES[key]
            name, _, rest = value.partition(',')
            if not name.strip():
                _warn(warnings, 'aliases', line_number, raw, 'missing record name')
                continue
            index = counters.get(kind, 0)
            counters[kind] = index + 1
            opaque.append(DnsRecord(
                id=f"dns-{kind.lower()}-{index}",
                kind=kind,
                name=name.strip(),
                value=rest.strip()
            ))
        else:
            _warn(warnings, 'aliases', line_number, raw, 'unrecognized directive')

    logger.debug(f"Parsed {len(pairs)} alias records and {len(opaque)} other records")
    return pairs, opaque


def format_opaque(record: DnsRecord) -> str:
    directive = OPAQUE_KIND_DIRECTIVES[record.kind]
    if record.value:
        return f"{directive}={record.name},{record.value}"
    return f"{directive}={record.name}"


def serialize_aliases(pairs: List[Tuple[str, str]], opaque: Optional[List[DnsRecord]] = None) -> str:
    lines = ['# DNS CNAME Records managed by dnsmasq-sync', GENERATED_NOTICE, '']
    if pairs:
        lines.extend(f"{CNAME_DIRECTIVE}={alias},{target}" for alias, target in pairs)
    else:
        lines.append('# No CNAME records configured')
    if opaque:
        lines.append('')
        lines.extend(format_opaque(r) for r in opaque)
    return '\n'.join(lines) + '\n'
