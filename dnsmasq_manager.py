#!/usr/bin/env python3
"""
dnsmasq Manager

The engine's public API. Wires the configuration store, the lease reader,
service control and the status probe together, and implements the
per-kind create/update/delete operations on top of store transactions.

Every mutating call validates first and runs inside ConfigStore.transaction(),
so a failed call leaves the fragment files exactly as they were.

Identifiers are derived from file position (ranges, options, DNS records) or
from the MAC address (reservations). Deleting a range or option renumbers
the ones after it.
"""

import logging
import threading
from typing import Callable, List, Optional, TypeVar

from config import DnsmasqSettings
from config_store import ConfigStore
from domain_names import name_key, strip_alias
from errors import NotFoundError
from leases import LeaseReader
from models import (AggregateConfig, DhcpOption, DhcpRange, DnsRecord, LeaseRecord, ServiceStatus,
                    StaticReservation, ADDRESS_KINDS, RECORD_CNAME)
from service_control import ServiceControl, create_service_control
from status_probe import StatusProbe
from validation import (check_reservation_conflicts, validate_dns_record, validate_mac,
                        validate_option, validate_range, validate_reservation)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('dnsmasq_manager')

T = TypeVar('T')


def _index_of(items: List[T], item_id: str, label: str) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    raise NotFoundError(f"{label} {item_id} not found")


def _stored(items: List[T], candidate: T) -> T:
    """Find the persisted copy of candidate, which carries the derived id."""
    for item in items:
        if item == candidate:
            return item
    return candidate


class DnsmasqManager:
    """Facade over the configuration store, leases and the daemon."""

    def __init__(self, settings: Optional[DnsmasqSettings] = None,
                 store: Optional[ConfigStore] = None,
                 lease_reader: Optional[LeaseReader] = None,
                 service_control: Optional[ServiceControl] = None,
                 status_probe: Optional[StatusProbe] = None):
        self.settings = settings or DnsmasqSettings.from_env()
        self.store = store or ConfigStore(self.settings)
        self.lease_reader = lease_reader or LeaseReader(self.settings.leases_path)
        self.service_control = service_control or create_service_control(self.settings)
        self.status_probe = status_probe or StatusProbe(self.settings.service_name, self.settings.dns_port)

    #
    # Aggregate configuration
    #
    def get_aggregate_config(self) -> AggregateConfig:
        return self.store.read()

    @property
    def parse_warnings(self) -> List[str]:
        """Lines skipped by the most recent read."""
        return list(self.store.parse_warnings)

    def update_aggregate_config(self, cfg: AggregateConfig) -> AggregateConfig:
        """Validate and persist a complete configuration, returning it as re-read."""
        for dhcp_range in cfg.ranges:
            validate_range(dhcp_range)
        for option in cfg.options:
            validate_option(option)
        for reservation in cfg.reservations:
            validate_reservation(reservation)
        for record in cfg.dns_records:
            validate_dns_record(record)

        with self.store.locked():
            with self.store.transaction() as current:
                current.settings = cfg.settings
                current.ranges = list(cfg.ranges)
                current.options = list(cfg.options)
                current.reservations = list(cfg.reservations)
                current.dns_records = list(cfg.dns_records)
            logger.info("Replaced the full dnsmasq configuration")
            return self.store.read()

    def _mutate(self, mutation: Callable[[AggregateConfig], None]) -> AggregateConfig:
        """Apply mutation in a transaction and return the configuration as re-read."""
        with self.store.locked():
            with self.store.transaction() as cfg:
                mutation(cfg)
            return self.store.read()

    #
    # Leases
    #
    def get_leases(self) -> List[LeaseRecord]:
        return self.lease_reader.read()

    def promote_lease_to_reservation(self, mac_address: str,
                                     hostname: Optional[str] = None) -> StaticReservation:
        """Turn the current lease for mac_address into a static reservation."""
        validate_mac(mac_address)
        lease = self.lease_reader.find_by_mac(mac_address)
        if lease is None:
            raise NotFoundError(f"No active lease found for MAC address {mac_address}")

        reservation = StaticReservation(
            id=None,
            mac_address=lease.mac_address,
            ip_address=lease.ip_address,
            hostname=hostname or lease.hostname
        )
        logger.info(f"Promoting lease to reservation: {lease}")
        return self.add_reservation(reservation)

    #
    # DHCP ranges
    #
    def list_ranges(self) -> List[DhcpRange]:
        return self.store.read().ranges

    def get_range(self, range_id: str) -> DhcpRange:
        ranges = self.store.read().ranges
        return ranges[_index_of(ranges, range_id, 'DHCP range')]

    def add_range(self, dhcp_range: DhcpRange) -> DhcpRange:
        validate_range(dhcp_range)
        cfg = self._mutate(lambda c: c.ranges.append(dhcp_range))
        logger.info(f"Added DHCP range {dhcp_range.start_ip}-{dhcp_range.end_ip}")
        return _stored(cfg.ranges, dhcp_range)

    def update_range(self, range_id: str, dhcp_range: DhcpRange) -> DhcpRange:
        validate_range(dhcp_range)

        def replace(c: AggregateConfig):
            dhcp_range.id = range_id
            c.ranges[_index_of(c.ranges, range_id, 'DHCP range')] = dhcp_range

        cfg = self._mutate(replace)
        logger.info(f"Updated DHCP range {range_id}")
        return _stored(cfg.ranges, dhcp_range)

    def delete_range(self, range_id: str) -> None:
        self._mutate(lambda c: c.ranges.pop(_index_of(c.ranges, range_id, 'DHCP range')))
        logger.info(f"Deleted DHCP range {range_id}")

    #
    # DHCP options
    #
    def list_options(self) -> List[DhcpOption]:
        return self.store.read().options

    def get_option(self, option_id: str) -> DhcpOption:
        options = self.store.read().options
        return options[_index_of(options, option_id, 'DHCP option')]

    def add_option(self, option: DhcpOption) -> DhcpOption:
        validate_option(option)
        cfg = self._mutate(lambda c: c.options.append(option))
        logger.info(f"Added DHCP option {option.code}")
        return _stored(cfg.options, option)

    def update_option(self, option_id: str, option: DhcpOption) -> DhcpOption:
        validate_option(option)

        def replace(c: AggregateConfig):
            option.id = option_id
            c.options[_index_of(c.options, option_id, 'DHCP option')] = option

        cfg = self._mutate(replace)
        logger.info(f"Updated DHCP option {option_id}")
        return _stored(cfg.options, option)

    def delete_option(self, option_id: str) -> None:
        self._mutate(lambda c: c.options.pop(_index_of(c.options, option_id, 'DHCP option')))
        logger.info(f"Deleted DHCP option {option_id}")

    #
    # Static reservations
    #
    def list_reservations(self) -> List[StaticReservation]:
        return self.store.read().reservations

    def get_reservation(self, reservation_id: str) -> StaticReservation:
        reservations = self.store.read().reservations
        return reservations[_index_of(reservations, reservation_id, 'Static reservation')]

    def get_reservation_by_mac(self, mac_address: str) -> StaticReservation:
        mac_address = mac_address.lower()
        for reservation in self.store.read().reservations:
            if reservation.mac_address == mac_address:
                return reservation
        raise NotFoundError(f"No reservation found for MAC address {mac_address}")

    def add_reservation(self, reservation: StaticReservation) -> StaticReservation:
        validate_reservation(reservation)

        def append(c: AggregateConfig):
            check_reservation_conflicts(c.reservations, reservation)
            c.reservations.append(reservation)

        cfg = self._mutate(append)
        logger.info(f"Added static reservation {reservation.mac_address} -> {reservation.ip_address}")
        return _stored(cfg.reservations, reservation)

    def update_reservation(self, reservation_id: str, reservation: StaticReservation) -> StaticReservation:
        validate_reservation(reservation)

        def replace(c: AggregateConfig):
            index = _index_of(c.reservations, reservation_id, 'Static reservation')
            check_reservation_conflicts(c.reservations, reservation, exclude_id=reservation_id)
            c.reservations[index] = reservation

        cfg = self._mutate(replace)
        logger.info(f"Updated static reservation {reservation_id}")
        return _stored(cfg.reservations, reservation)

    def update_reservation_by_mac(self, mac_address: str, reservation: StaticReservation) -> StaticReservation:
        existing = self.get_reservation_by_mac(mac_address)
        return self.update_reservation(existing.id, reservation)

    def delete_reservation(self, reservation_id: str) -> None:
        self._mutate(lambda c: c.reservations.pop(
            _index_of(c.reservations, reservation_id, 'Static reservation')))
        logger.info(f"Deleted static reservation {reservation_id}")

    def delete_reservation_by_mac(self, mac_address: str) -> None:
        self.delete_reservation(self.get_reservation_by_mac(mac_address).id)

    #
    # DNS records
    #
    def list_dns_records(self) -> List[DnsRecord]:
        return self.store.read().dns_records

    def get_dns_record(self, record_id: str) -> DnsRecord:
        records = self.store.read().dns_records
        return records[_index_of(records, record_id, 'DNS record')]

    @staticmethod
    def _alias_target(records: List[DnsRecord], record: DnsRecord,
                      local_domain: Optional[str]) -> Optional[DnsRecord]:
        """The address record a CNAME points at, if there is one."""
        if record.kind != RECORD_CNAME:
            return None
        target = name_key(record.value, local_domain)
        for existing in records:
            if existing.kind in ADDRESS_KINDS and name_key(existing.name, local_domain) == target:
                return existing
        return None

    def _place_dns_record(self, cfg: AggregateConfig, record: DnsRecord,
                          index: Optional[int] = None) -> DnsRecord:
        """
        Insert record, or fold a CNAME into its target's aliases.

        Aliases of known address records are stored as part of that record,
        which is also how the store reads them back. CNAME names lose the
        local domain the same way they do on a read.
        """
        records = cfg.dns_records
        local_domain = cfg.settings.domain_name
        if record.kind == RECORD_CNAME:
            record.name, record.value = strip_alias(record.name, record.value, local_domain)

        target = self._alias_target(records, record, local_domain)
        if target is not None:
            if index is not None:
                records.pop(index)
            target.aliases.append(record.name)
            return target
        if index is None:
            records.append(record)
        else:
            records[index] = record
        return record

    def add_dns_record(self, record: DnsRecord) -> DnsRecord:
        validate_dns_record(record)
        placed = []

        def insert(c: AggregateConfig):
            placed.append(self._place_dns_record(c, record))

        cfg = self._mutate(insert)
        logger.info(f"Added {record.kind} record {record.name} -> {record.value}")
        return _stored(cfg.dns_records, placed[0])

    def update_dns_record(self, record_id: str, record: DnsRecord) -> DnsRecord:
        validate_dns_record(record)
        placed = []

        def replace(c: AggregateConfig):
            index = _index_of(c.dns_records, record_id, 'DNS record')
            record.id = record_id
            placed.append(self._place_dns_record(c, record, index))

        cfg = self._mutate(replace)
        logger.info(f"Updated DNS record {record_id}")
        return _stored(cfg.dns_records, placed[0])

    def delete_dns_record(self, record_id: str) -> None:
        self._mutate(lambda c: c.dns_records.pop(_index_of(c.dns_records, record_id, 'DNS record')))
        logger.info(f"Deleted DNS record {record_id}")

    #
    # Daemon
    #
    def restart(self, cancel: Optional[threading.Event] = None) -> str:
        return self.service_control.restart(cancel)

    def reload(self, cancel: Optional[threading.Event] = None) -> str:
        return self.service_control.reload(cancel)

    def get_status(self) -> ServiceStatus:
        return self.status_probe.get_status()
