#!/usr/bin/env python3
"""
Configuration Store

This module reads every managed dnsmasq fragment into one AggregateConfig and
writes an updated aggregate back out across the fragment files.

Writes are staged: every fragment is rendered and written to a temporary file
beside its target first, and only then are the temporary files renamed over
the targets in order (advanced settings, reservations, ranges, options, hosts,
aliases). A failure while staging leaves every fragment untouched. A failure
during the renames is reported with the fragments already replaced.

Read-modify-write sequences must go through transaction(), which holds an
in-process lock and, when a lock file is configured, an advisory file lock.
"""

import os
import fcntl
import logging
import tempfile
import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

import fragment_codec
from config import DnsmasqSettings
from domain_names import expand_alias, name_key, strip_alias, strip_name
from errors import StoreIOError
from hosts_file import parse_hosts, serialize_hosts
from models import AggregateConfig, DnsRecord, ADDRESS_KINDS, OPAQUE_KINDS, RECORD_CNAME
from validation import check_unique_dns_names, check_unique_reservations

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('config_store')


class ConfigStore:
    """Reads and writes the aggregate dnsmasq configuration."""

    def __init__(self, settings: DnsmasqSettings):
        self.settings = settings
        self.parse_warnings: List[str] = []
        self._lock = threading.RLock()
        self._depth = 0  # transaction nesting, guarded by _lock

    #
    # Reading
    #
    def _read_file(self, path: str) -> Optional[str]:
        """Return the file content, or None when the file does not exist yet."""
        if not os.path.exists(path):
            logger.debug(f"Fragment not found, treating as empty: {path}")
            return None
        try:
            with open(path, 'r') as f:
                return f.read()
        except OSError as e:
            raise StoreIOError(path, f"Could not read {path}: {e}") from e

    def read(self) -> AggregateConfig:
        """Load every fragment. Missing files yield empty collections."""
        s = self.settings
        warnings: List[str] = []
        with self._lock:
            advanced = fragment_codec.parse_advanced(self._read_file(s.advanced_file) or '', warnings)
            ranges = fragment_codec.parse_ranges(self._read_file(s.ranges_file) or '', warnings)
            options = fragment_codec.parse_options(self._read_file(s.options_file) or '', warnings)
            reservations = fragment_codec.parse_reservations(
                self._read_file(s.static_leases_file) or '', warnings)
            dns_records = self._read_dns_records(advanced.domain_name, warnings)

        self.parse_warnings = warnings
        if warnings:
            logger.warning(f"Skipped {len(warnings)} malformed configuration lines")
        logger.info(f"Loaded configuration: {len(ranges)} ranges, {len(options)} options, "
                    f"{len(reservations)} reservations, {len(dns_records)} DNS records")

        return AggregateConfig(
            settings=advanced,
            ranges=ranges,
            options=options,
            reservations=reservations,
            dns_records=dns_records
        )

    def _read_dns_records(self, local_domain: Optional[str], warnings: List[str]) -> List[DnsRecord]:
        """
        Merge the hosts file and the alias fragment.

        An alias whose target is a known address record becomes one of that
        record's aliases; any other alias stays a standalone CNAME record.
        """
        s = self.settings
        address_records = parse_hosts(self._read_file(s.hosts_path) or '', warnings)
        pairs, opaque = fragment_codec.parse_aliases(self._read_file(s.cnames_file) or '', warnings)

        by_name: Dict[str, DnsRecord] = OrderedDict(
            (name_key(r.name, local_domain), r) for r in address_records)
        for record in address_records:
            record.aliases = [strip_name(a, local_domain) for a in record.aliases]
        records = list(address_records)
        standalone = 0

        for alias, target in pairs:
            alias, target = strip_alias(alias, target, local_domain)
            target_record = by_name.get(name_key(target, local_domain))
            if target_record is not None:
                known = {name_key(a, local_domain) for a in target_record.aliases}
                if name_key(alias, local_domain) not in known:
                    target_record.aliases.append(alias)
            else:
                records.append(DnsRecord(
                    id=f"dns-cname-{standalone}",
                    kind=RECORD_CNAME,
                    name=alias,
                    value=target
                ))
                standalone += 1

        records.extend(opaque)
        logger.debug(f"Loaded {len(records)} DNS records ({len(address_records)} address records, "
                     f"{len(pairs)} alias lines)")
        return records

    #
    # Writing
    #
    def render(self, cfg: AggregateConfig) -> List[Tuple[str, str]]:
        """Render every fragment as (path, content), in write order."""
        s = self.settings
        return [
            (s.advanced_file, fragment_codec.serialize_advanced(cfg.settings, s.managed_includes())),
            (s.static_leases_file, fragment_codec.serialize_reservations(cfg.reservations)),
            (s.ranges_file, fragment_codec.serialize_ranges(cfg.ranges)),
            (s.options_file, fragment_codec.serialize_options(cfg.options)),
            (s.hosts_path, serialize_hosts(cfg.dns_records)),
            (s.cnames_file, self._render_aliases(cfg)),
        ]

    def _render_aliases(self, cfg: AggregateConfig) -> str:
        local_domain = cfg.settings.domain_name
        address_records = [r for r in cfg.dns_records if r.kind in ADDRESS_KINDS]

        pairs = [(r.name, r.value) for r in cfg.dns_records if r.kind == RECORD_CNAME]
        for record in address_records:
            pairs.extend((alias, record.name) for alias in record.aliases)

        pairs = [expand_alias(alias, target, local_domain) for alias, target in pairs]
        opaque = [r for r in cfg.dns_records if r.kind in OPAQUE_KINDS]
        return fragment_codec.serialize_aliases(pairs, opaque)

    def check(self, cfg: AggregateConfig) -> None:
        """Cross-fragment checks that must pass before anything is written."""
        check_unique_reservations(cfg.reservations)
        check_unique_dns_names(cfg.dns_records, cfg.settings.domain_name)

    def write(self, cfg: AggregateConfig) -> None:
        """Validate the aggregate and rewrite every fragment file."""
        with self._lock:
            self.check(cfg)
            self._commit(self.render(cfg))
        logger.info(f"Configuration written: {len(cfg.ranges)} ranges, {len(cfg.options)} options, "
                    f"{len(cfg.reservations)} reservations, {len(cfg.dns_records)} DNS records")

    def _commit(self, files: List[Tuple[str, str]]) -> None:
        staged: List[Tuple[str, str]] = []

        for path, content in files:
            try:
                staged.append((self._stage(path, content), path))
            except OSError as e:
                self._discard(staged)
                logger.error(f"Failed to stage {path}, no fragment was changed: {e}")
                raise StoreIOError(path, f"Could not write {path}: {e}") from e

        replaced: List[str] = []
        for index, (temp_path, path) in enumerate(staged):
            try:
                os.replace(temp_path, path)
            except OSError as e:
                self._discard(staged[index:])
                logger.error(f"Failed to replace {path}; already replaced: {replaced}")
                raise StoreIOError(
                    path,
                    f"Could not replace {path}: {e} (already updated: {', '.join(replaced) or 'none'})",
                    replaced=replaced
                ) from e
            replaced.append(path)
            logger.debug(f"Updated {path}")

    def _stage(self, path: str, content: str) -> str:
        """Write content to a temporary file in the target's directory."""
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=directory, prefix=f'.{os.path.basename(path)}.',
                                         suffix='.tmp', text=True)
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if os.path.exists(path):
                os.chmod(temp_path, os.stat(path).st_mode)
            else:
                # mkstemp creates 0600; fragments must stay readable by the daemon
                os.chmod(temp_path, 0o644)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        return temp_path

    def _discard(self, staged: List[Tuple[str, str]]) -> None:
        for temp_path, _ in staged:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove temporary file {temp_path}: {e}")

    #
    # Serialized read-modify-write
    #
    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        if not self.settings.lock_file or self._depth > 1:
            yield
            return

        os.makedirs(os.path.dirname(os.path.abspath(self.settings.lock_file)), exist_ok=True)
        with open(self.settings.lock_file, 'a') as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the store lock. Re-entrant within one thread."""
        with self._lock:
            self._depth += 1
            try:
                with self._file_lock():
                    yield
            finally:
                self._depth -= 1

    @contextmanager
    def transaction(self) -> Iterator[AggregateConfig]:
        """
        Read the aggregate, let the caller mutate it, then write it back.

        The write only happens when the block exits without an exception, so
        a failed validation inside the block leaves every file untouched.
        """
        with self.locked():
            cfg = self.read()
            yield cfg
            self.write(cfg)
