#!/usr/bin/env python3
"""
Settings for the dnsmasq configuration engine

All paths and service-control parameters come from environment variables
with development-friendly defaults, so a fresh checkout works against the
./dev directory without any setup.
"""

import os
import logging
from typing import Dict, List, Optional

from utils import parse_bool

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('config')

CONTROL_DIRECT = 'direct'
CONTROL_HANDOFF = 'handoff'
CONTROL_MODES = (CONTROL_DIRECT, CONTROL_HANDOFF)

DEFAULT_CONFIG_DIR = './dev/dnsmasq.d'
DEFAULT_HOSTS_PATH = './dev/hosts'
DEFAULT_LEASES_PATH = './dev/dnsmasq.leases'
DEFAULT_SERVICE_NAME = 'dnsmasq'
DEFAULT_REQUEST_FILE = '/tmp/dnsmasq-restart-request'
DEFAULT_RESULT_FILE = '/tmp/dnsmasq-restart-result'
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_HANDOFF_TIMEOUT = 10.0
DEFAULT_DNS_PORT = 53


class DnsmasqSettings:
    """Filesystem layout and service-control parameters."""

    def __init__(self, config_dir: str = DEFAULT_CONFIG_DIR,
                 ranges_file: Optional[str] = None, options_file: Optional[str] = None,
                 static_leases_file: Optional[str] = None, advanced_file: Optional[str] = None,
                 cnames_file: Optional[str] = None, hosts_path: str = DEFAULT_HOSTS_PATH,
                 leases_path: str = DEFAULT_LEASES_PATH, lock_file: Optional[str] = None,
                 service_name: str = DEFAULT_SERVICE_NAME, control_mode: str = CONTROL_DIRECT,
                 use_sudo: bool = True, request_file: str = DEFAULT_REQUEST_FILE,
                 result_file: str = DEFAULT_RESULT_FILE,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 handoff_timeout: float = DEFAULT_HANDOFF_TIMEOUT,
                 dns_port: int = DEFAULT_DNS_PORT):
        self.config_dir = config_dir
        self.ranges_file = ranges_file or os.path.join(config_dir, 'dnsmasq-ranges.conf')
        self.options_file = options_file or os.path.join(config_dir, 'dnsmasq-options.conf')
        self.static_leases_file = static_leases_file or os.path.join(config_dir, 'dnsmasq-static-leases.conf')
        self.advanced_file = advanced_file or os.path.join(config_dir, 'dnsmasq-advanced.conf')
        self.cnames_file = cnames_file or os.path.join(config_dir, 'dnsmasq-cnames.conf')
        self.hosts_path = hosts_path
        self.leases_path = leases_path
        self.lock_file = lock_file or None

        if control_mode not in CONTROL_MODES:
            raise ValueError(f"Unknown control mode {control_mode!r}, expected one of {', '.join(CONTROL_MODES)}")
        if poll_interval <= 0 or handoff_timeout <= 0:
            raise ValueError("Handoff poll interval and timeout must be positive")

        self.service_name = service_name
        self.control_mode = control_mode
        self.use_sudo = use_sudo
        self.request_file = request_file
        self.result_file = result_file
        self.poll_interval = float(poll_interval)
        self.handoff_timeout = float(handoff_timeout)
        self.dns_port = int(dns_port)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'DnsmasqSettings':
        """Build settings from DNSMASQ_* environment variables."""
        env = os.environ if environ is None else environ
        try:
            return cls(
                config_dir=env.get('DNSMASQ_CONFIG_DIR', DEFAULT_CONFIG_DIR),
                ranges_file=env.get('DNSMASQ_RANGES_CONFIG_FILE'),
                options_file=env.get('DNSMASQ_OPTIONS_CONFIG_FILE'),
                static_leases_file=env.get('DNSMASQ_STATIC_LEASES_CONFIG_FILE'),
                advanced_file=env.get('DNSMASQ_ADVANCED_CONFIG_FILE'),
                cnames_file=env.get('DNSMASQ_CNAMES_CONFIG_FILE'),
                hosts_path=env.get('DNSMASQ_HOSTS_PATH', DEFAULT_HOSTS_PATH),
                leases_path=env.get('DNSMASQ_LEASES_PATH', DEFAULT_LEASES_PATH),
                lock_file=env.get('DNSMASQ_LOCK_FILE'),
                service_name=env.get('DNSMASQ_SERVICE_NAME', DEFAULT_SERVICE_NAME),
                control_mode=env.get('DNSMASQ_CONTROL_MODE', CONTROL_DIRECT).strip().lower(),
                use_sudo=parse_bool(env.get('DNSMASQ_USE_SUDO'), default=True),
                request_file=env.get('DNSMASQ_RESTART_REQUEST_FILE', DEFAULT_REQUEST_FILE),
                result_file=env.get('DNSMASQ_RESTART_RESULT_FILE', DEFAULT_RESULT_FILE),
                poll_interval=float(env.get('DNSMASQ_HANDOFF_POLL_INTERVAL', DEFAULT_POLL_INTERVAL)),
                handoff_timeout=float(env.get('DNSMASQ_HANDOFF_TIMEOUT', DEFAULT_HANDOFF_TIMEOUT)),
                dns_port=int(env.get('DNSMASQ_DNS_PORT', DEFAULT_DNS_PORT)),
            )
        except ValueError as e:
            logger.error(f"Invalid dnsmasq settings in environment: {e}")
            raise

    def managed_includes(self) -> List[str]:
        """Fragments the advanced settings file pulls in with conf-file=."""
        return [self.static_leases_file, self.ranges_file, self.options_file]
