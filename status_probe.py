#!/usr/bin/env python3
"""
Status Probe

Works out whether dnsmasq is running, and for how long, by trying a series
of strategies until one gives a definite answer:

1. systemctl status: an "Active: active (running) since ..." line is
   definitive and carries the start time.
2. pgrep for the executable name, with the start time from ps.
3. A TCP connection to the DNS port: accepted means running with unknown
   uptime, refused means stopped.

get_status() never raises. If no strategy answers, the status is unknown.
"""

import re
import socket
import logging
import subprocess
from datetime import datetime, timezone
from typing import Callable, List, Optional

from models import ServiceStatus, STATUS_RUNNING, STATUS_STOPPED, STATUS_UNKNOWN
from utils import format_uptime

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('status_probe')

# Active: active (running) since Fri 2015-05-15 15:08:26 UTC; 7s ago
SYSTEMD_ACTIVE_PATTERN = re.compile(r'^Active:\s+active \(running\) since (.+?);')
SYSTEMD_TIME_PATTERN = re.compile(r'(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\s+(\S+))?')
PS_TIME_FORMAT = '%a %b %d %H:%M:%S %Y'

ALL_FAILED = 'Could not determine service status - all methods failed'


class ProbeError(Exception):
    """A strategy could not run. The cascade moves on to the next one."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_systemd_since(text: str) -> Optional[datetime]:
    """
    Parse the start time systemd prints after 'since'.

    UTC/GMT times come back timezone-aware; anything else is taken as local
    time. Returns None when the text has no recognisable timestamp.
    """
    match = SYSTEMD_TIME_PATTERN.search(text)
    if not match:
        return None
    try:
        started = datetime.strptime(match.group(1), '%Y-%m-%d %H:%M:%S')
    except ValueError:
        return None
    if match.group(2) in ('UTC', 'GMT'):
        return started.replace(tzinfo=timezone.utc)
    return started.astimezone()


def parse_ps_lstart(text: str) -> Optional[datetime]:
    """Parse `ps -o lstart=` output such as 'Fri May 15 15:08:26 2015'."""
    text = ' '.join(text.split())
    if not text:
        return None
    try:
        return datetime.strptime(text, PS_TIME_FORMAT).astimezone()
    except ValueError:
        return None


class StatusProbe:
    """Runs the status cascade for one service."""

    def __init__(self, service_name: str = 'dnsmasq', dns_port: int = 53, host: str = '127.0.0.1',
                 command_timeout: float = 5.0, port_timeout: float = 1.0,
                 now: Callable[[], datetime] = _now):
        self.service_name = service_name
        self.dns_port = dns_port
        self.host = host
        self.command_timeout = command_timeout
        self.port_timeout = port_timeout
        self._now = now

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.command_timeout
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ProbeError(f"{cmd[0]} unavailable: {e}") from e

    def _uptime(self, started: Optional[datetime]):
        if started is None:
            return None
        return self._now() - started

    def get_status(self) -> ServiceStatus:
        strategies = (
            ('systemctl', self.probe_systemd),
            ('pgrep', self.probe_process),
            ('port', self.probe_port),
        )
        failures = []

        for name, strategy in strategies:
            try:
                status = strategy()
            except ProbeError as e:
                logger.warning(f"Status probe via {name} failed: {e}")
                failures.append(f"{name}: {e}")
                continue
            if status is not None:
                uptime = format_uptime(status.uptime) if status.uptime is not None else 'unknown'
                logger.debug(f"{self.service_name} is {status.state} (uptime {uptime}) according to {name}")
                return status
            logger.debug(f"Status probe via {name} was inconclusive")

        logger.error(f"{ALL_FAILED}: {'; '.join(failures)}")
        return ServiceStatus(STATUS_UNKNOWN, None, ALL_FAILED)

    def probe_systemd(self) -> Optional[ServiceStatus]:
        """Only a running unit is conclusive; other states fall through."""
        # systemctl status exits non-zero for stopped units, so the exit code is ignored
        result = self._run(['systemctl', 'status', self.service_name, '--no-pager'])

        for line in result.stdout.splitlines():
            line = line.strip()
            if not line.startswith('Active:'):
                continue
            match = SYSTEMD_ACTIVE_PATTERN.match(line)
            if not match:
                logger.debug(f"systemd reports {self.service_name} as: {line}")
                return None
            started = parse_systemd_since(match.group(1))
            return ServiceStatus(STATUS_RUNNING, self._uptime(started),
                                 f"{self.service_name} is running (systemd)")

        if result.returncode != 0 and not result.stdout.strip():
            raise ProbeError(f"systemctl exited with code {result.returncode}: {result.stderr.strip()}")
        return None

    def probe_process(self) -> Optional[ServiceStatus]:
        result = self._run(['pgrep', '-x', self.service_name])
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise ProbeError(f"pgrep exited with code {result.returncode}: {result.stderr.strip()}")

        pids = result.stdout.split()
        if not pids:
            return None

        started = None
        try:
            ps = self._run(['ps', '-o', 'lstart=', '-p', pids[0]])
            if ps.returncode == 0:
                started = parse_ps_lstart(ps.stdout)
        except ProbeError as e:
            logger.debug(f"Could not read start time of pid {pids[0]}: {e}")

        return ServiceStatus(STATUS_RUNNING, self._uptime(started),
                             f"{self.service_name} process detected via pgrep (pid {pids[0]})")

    def probe_port(self) -> ServiceStatus:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.settimeout(self.port_timeout)
                result = s.connect_ex((self.host, self.dns_port))
        except OSError as e:
            raise ProbeError(f"Could not test port {self.dns_port}: {e}") from e

        if result == 0:
            return ServiceStatus(STATUS_RUNNING, None,
                                 f"Port {self.dns_port} is accepting connections")
        return ServiceStatus(STATUS_STOPPED, None,
                             f"{self.service_name} is not running (nothing listening on port {self.dns_port})")
