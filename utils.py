#!/usr/bin/env python3
"""
Utility functions for the dnsmasq configuration engine

Small helpers shared by the settings loader, the status probe and the
model layer.
"""

import logging
from datetime import timedelta
from typing import Optional, Union

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('utils')

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off', '')


def format_uptime(uptime: Union[timedelta, float, int]) -> str:
    """
    Format a duration using the coarsest sensible unit combination.

    Days+hours+minutes, else hours+minutes, else minutes+seconds,
    else seconds. Negative durations (clock skew) are shown as 0s.
    """
    if isinstance(uptime, timedelta):
        total = uptime.total_seconds()
    else:
        total = float(uptime)

    seconds = max(int(total), 0)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    elif hours > 0:
        return f"{hours}h {minutes % 60}m"
    elif minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse an environment-style boolean."""
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")
