#!/usr/bin/env python3
"""
Service Control

Applies a new configuration by asking the host to restart or reload the
dnsmasq daemon. Two strategies are available:

- DirectServiceControl runs the service manager itself (systemctl, usually
  through sudo) and checks its exit status.
- HandoffServiceControl is for deployments where this process has no
  privilege over the daemon. It drops a request into a mailbox that a
  privileged watcher observes, then polls for the watcher's verdict.

The mailbox is a HandoffChannel. FileHandoffChannel is the real one, built on
a pair of well-known paths:

    request file: "<unix timestamp>\\n<action>\\n"
    result file:  "success [details]" or "error <details>"
"""

import os
import time
import logging
import tempfile
import threading
import subprocess
from typing import Callable, List, Optional

from config import DnsmasqSettings, CONTROL_HANDOFF
from errors import HandoffCancelledError, HandoffTimeoutError, ServiceControlError

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('service_control')

ACTION_RESTART = 'restart'
ACTION_RELOAD = 'reload'
ACTIONS = (ACTION_RESTART, ACTION_RELOAD)

RESULT_SUCCESS = 'success'
RESULT_ERROR = 'error'

DEFAULT_COMMAND_TIMEOUT = 30.0


class HandoffResult:
    """The watcher's verdict on one request."""

    def __init__(self, success: bool, message: str = ''):
        self.success = success
        self.message = message

    @classmethod
    def parse(cls, content: str) -> Optional['HandoffResult']:
        """Parse result file content. Empty content means not written yet."""
        content = content.strip()
        if not content:
            return None
        parts = content.split(None, 1)
        verdict = parts[0].lower()
        message = parts[1].strip() if len(parts) > 1 else ''
        if verdict == RESULT_SUCCESS:
            return cls(True, message)
        if verdict == RESULT_ERROR:
            return cls(False, message)
        return cls(False, f"Unexpected handoff result: {content}")

    def __repr__(self):
        return f"HandoffResult(success={self.success!r}, message={self.message!r})"


class HandoffChannel:
    """Request/response mailbox shared with the privileged watcher."""

    def clear_result(self) -> None:
        """Remove any result left over from an earlier request."""
        raise NotImplementedError

    def send_request(self, action: str, timestamp: float) -> None:
        raise NotImplementedError

    def read_result(self) -> Optional[HandoffResult]:
        """Return the verdict, or None if the watcher has not answered yet."""
        raise NotImplementedError

    def acknowledge(self) -> None:
        """Consume the verdict so it cannot be mistaken for the next one."""
        raise NotImplementedError


class FileHandoffChannel(HandoffChannel):
    """HandoffChannel over a request file and a result file."""

    def __init__(self, request_file: str, result_file: str):
        self.request_file = request_file
        self.result_file = result_file

    def _remove(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ServiceControlError(f"Could not remove handoff file {path}: {e}") from e

    def clear_result(self) -> None:
        self._remove(self.result_file)

    def send_request(self, action: str, timestamp: float) -> None:
        # Written via rename so the watcher never sees a half-written request
        directory = os.path.dirname(os.path.abspath(self.request_file))
        try:
            fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.handoff-', suffix='.tmp', text=True)
            with os.fdopen(fd, 'w') as f:
                f.write(f"{int(timestamp)}\n{action}\n")
            os.chmod(temp_path, 0o644)
            os.replace(temp_path, self.request_file)
        except OSError as e:
            raise ServiceControlError(f"Could not write handoff request {self.request_file}: {e}") from e
        logger.debug(f"Handoff request written to {self.request_file}: {action}")

    def read_result(self) -> Optional[HandoffResult]:
        try:
            with open(self.result_file, 'r') as f:
                content = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ServiceControlError(f"Could not read handoff result {self.result_file}: {e}") from e
        return HandoffResult.parse(content)

    def acknowledge(self) -> None:
        self._remove(self.result_file)
        self._remove(self.request_file)


class ServiceControl:
    """Common interface of the control strategies."""

    def restart(self, cancel: Optional[threading.Event] = None) -> str:
        """Restart the daemon. Active clients may be interrupted."""
        return self.perform(ACTION_RESTART, cancel)

    def reload(self, cancel: Optional[threading.Event] = None) -> str:
        """Reload the daemon's configuration without a full restart."""
        return self.perform(ACTION_RELOAD, cancel)

    def perform(self, action: str, cancel: Optional[threading.Event] = None) -> str:
        raise NotImplementedError


class DirectServiceControl(ServiceControl):
    """Runs systemctl synchronously."""

    def __init__(self, service_name: str = 'dnsmasq', use_sudo: bool = True,
                 command_timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.service_name = service_name
        self.use_sudo = use_sudo
        self.command_timeout = command_timeout

    def command(self, action: str) -> List[str]:
        cmd = ['systemctl', action, self.service_name]
        if self.use_sudo:
            cmd = ['sudo', '--non-interactive'] + cmd
        return cmd

    def perform(self, action: str, cancel: Optional[threading.Event] = None) -> str:
        if action not in ACTIONS:
            raise ValueError(f"Unknown service action: {action}")

        cmd = self.command(action)
        logger.info(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.command_timeout
            )
        except FileNotFoundError as e:
            raise ServiceControlError(f"Failed to {action} {self.service_name}: {cmd[0]} not found") from e
        except subprocess.TimeoutExpired as e:
            raise ServiceControlError(
                f"Failed to {action} {self.service_name}: timed out after {self.command_timeout}s") from e

        output = '\n'.join(part.strip() for part in (result.stdout, result.stderr) if part and part.strip())
        if result.returncode != 0:
            logger.error(f"Failed to {action} {self.service_name} (exit code {result.returncode}): {output}")
            raise ServiceControlError(
                f"Failed to {action} {self.service_name} (exit code {result.returncode})"
                + (f": {output}" if output else ''),
                output
            )

        logger.info(f"{self.service_name} {action} completed")
        return output


class HandoffServiceControl(ServiceControl):
    """
    Delegates restart/reload to a privileged watcher through a HandoffChannel.

    perform() blocks for at most ``timeout`` seconds, polling every
    ``poll_interval`` seconds. Pass a threading.Event as ``cancel`` to stop
    waiting early. One request is in flight at a time.
    """

    def __init__(self, channel: HandoffChannel, poll_interval: float = 0.5, timeout: float = 10.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 wall_clock: Callable[[], float] = time.time):
        self.channel = channel
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._lock = threading.Lock()

    def perform(self, action: str, cancel: Optional[threading.Event] = None) -> str:
        if action not in ACTIONS:
            raise ValueError(f"Unknown service action: {action}")

        with self._lock:
            self.channel.clear_result()
            self.channel.send_request(action, self._wall_clock())
            logger.info(f"Requested dnsmasq {action} via handoff, waiting up to {self.timeout}s")
            return self._wait(action, cancel)

    def _wait(self, action: str, cancel: Optional[threading.Event]) -> str:
        deadline = self._clock() + self.timeout

        while True:
            result = self.channel.read_result()
            if result is not None:
                self.channel.acknowledge()
                if result.success:
                    logger.info(f"dnsmasq {action} confirmed by watcher")
                    return result.message
                logger.error(f"dnsmasq {action} failed: {result.message}")
                raise ServiceControlError(
                    f"dnsmasq {action} failed: {result.message or 'no details given'}", result.message)

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.error(f"No handoff result for {action} after {self.timeout}s")
                raise HandoffTimeoutError(f"Timed out after {self.timeout}s waiting for dnsmasq {action}")

            delay = min(self.poll_interval, remaining)
            if cancel is not None:
                if cancel.is_set() or cancel.wait(delay):
                    logger.warning(f"Handoff wait for {action} cancelled")
                    raise HandoffCancelledError(f"Cancelled while waiting for dnsmasq {action}")
            else:
                self._sleep(delay)


def create_service_control(settings: DnsmasqSettings) -> ServiceControl:
    """Pick the strategy the settings ask for."""
    if settings.control_mode == CONTROL_HANDOFF:
        channel = FileHandoffChannel(settings.request_file, settings.result_file)
        return HandoffServiceControl(channel, settings.poll_interval, settings.handoff_timeout)
    return DirectServiceControl(settings.service_name, settings.use_sudo)
