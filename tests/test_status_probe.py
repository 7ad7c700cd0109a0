#!/usr/bin/env python3
"""
Tests for the status probe cascade.

systemctl, pgrep and ps are replaced by patching subprocess.run; the port
strategy runs against a real socket on an ephemeral port.
"""

import os
import sys
import socket
import unittest
import subprocess
from datetime import datetime, timezone
from unittest.mock import patch

# Add the parent directory to the path so we can import the modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from models import STATUS_RUNNING, STATUS_STOPPED, STATUS_UNKNOWN
from status_probe import ALL_FAILED, StatusProbe, parse_ps_lstart, parse_systemd_since

SYSTEMD_RUNNING = """\
● dnsmasq.service - dnsmasq - A lightweight DHCP and caching DNS server
     Loaded: loaded (/lib/systemd/system/dnsmasq.service; enabled; vendor preset: enabled)
     Active: active (running) since Fri 2015-05-15 15:08:26 UTC; 7s ago
   Main PID: 1234 (dnsmasq)
"""

SYSTEMD_STOPPED = """\
● dnsmasq.service - dnsmasq - A lightweight DHCP and caching DNS server
     Loaded: loaded (/lib/systemd/system/dnsmasq.service; enabled; vendor preset: enabled)
     Active: inactive (dead)
"""


def fake_commands(responses):
    """Build a subprocess.run replacement answering by executable name."""
    def run(cmd, **kwargs):
        response = responses.get(cmd[0])
        if response is None or isinstance(response, Exception):
            raise response or FileNotFoundError(cmd[0])
        returncode, stdout = response
        return subprocess.CompletedProcess(args=cmd, returncode=returncode, stdout=stdout, stderr='')
    return run


class ListeningSocket:
    """A TCP listener on 127.0.0.1 with a kernel-assigned port."""

    def __enter__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.listen(1)
        return self.sock.getsockname()[1]

    def __exit__(self, *exc):
        self.sock.close()


def closed_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestStatusProbe(unittest.TestCase):

    @patch('status_probe.subprocess.run')
    def test_systemd_running_with_uptime(self, mock_run):
        mock_run.side_effect = fake_commands({'systemctl': (0, SYSTEMD_RUNNING)})
        now = datetime(2015, 5, 15, 16, 10, 26, tzinfo=timezone.utc)
        status = StatusProbe('dnsmasq', now=lambda: now).get_status()

        self.assertEqual(status.state, STATUS_RUNNING)
        self.assertEqual(status.uptime.total_seconds(), 3720)
        self.assertEqual(status.to_dict()['uptime'], '1h 2m')
        self.assertEqual(mock_run.call_count, 1)

    @patch('status_probe.subprocess.run')
    def test_stopped_unit_falls_through_to_pgrep(self, mock_run):
        mock_run.side_effect = fake_commands({
            'systemctl': (3, SYSTEMD_STOPPED),
            'pgrep': (0, '4321\n'),
            'ps': (0, 'Fri May 15 15:08:26 2015\n'),
        })
        now = datetime(2015, 5, 15, 15, 10, 26).astimezone()
        status = StatusProbe('dnsmasq', now=lambda: now).get_status()

        self.assertEqual(status.state, STATUS_RUNNING)
        self.assertEqual(status.uptime.total_seconds(), 120)
        self.assertIn('4321', status.details)

    @patch('status_probe.subprocess.run')
    def test_process_without_start_time(self, mock_run):
        mock_run.side_effect = fake_commands({
            'pgrep': (0, '4321\n'),
            'ps': (1, ''),
        })
        status = StatusProbe('dnsmasq').get_status()
        self.assertEqual(status.state, STATUS_RUNNING)
        self.assertIsNone(status.uptime)
        self.assertEqual(status.to_dict()['uptime'], 'Unknown')

    @patch('status_probe.subprocess.run')
    def test_port_bound_means_running_with_unknown_uptime(self, mock_run):
        mock_run.side_effect = fake_commands({})
        with ListeningSocket() as port:
            status = StatusProbe('dnsmasq', dns_port=port).get_status()

        self.assertEqual(status.state, STATUS_RUNNING)
        self.assertIsNone(status.uptime)
        self.assertEqual(status.to_dict()['uptime'], 'Unknown')

    @patch('status_probe.subprocess.run')
    def test_nothing_found_means_stopped(self, mock_run):
        mock_run.side_effect = fake_commands({
            'systemctl': (3, SYSTEMD_STOPPED),
            'pgrep': (1, ''),
        })
        status = StatusProbe('dnsmasq', dns_port=closed_port()).get_status()
        self.assertEqual(status.state, STATUS_STOPPED)
        self.assertIsNone(status.to_dict()['uptime'])

    @patch('status_probe.socket.socket')
    @patch('status_probe.subprocess.run')
    def test_all_strategies_fail(self, mock_run, mock_socket):
        mock_run.side_effect = fake_commands({'pgrep': (2, '')})
        mock_socket.side_effect = OSError('socket unavailable')

        status = StatusProbe('dnsmasq').get_status()
        self.assertEqual(status.state, STATUS_UNKNOWN)
        self.assertEqual(status.details, ALL_FAILED)
        self.assertIsNone(status.uptime)

    @patch('status_probe.subprocess.run')
    def test_unparseable_start_time_gives_unknown_uptime(self, mock_run):
        output = SYSTEMD_RUNNING.replace('2015-05-15', '2015-13-40')
        mock_run.side_effect = fake_commands({'systemctl': (0, output)})
        status = StatusProbe('dnsmasq').get_status()
        self.assertEqual(status.state, STATUS_RUNNING)
        self.assertIsNone(status.uptime)

    @patch('status_probe.subprocess.run')
    def test_command_timeout_is_a_failed_strategy(self, mock_run):
        mock_run.side_effect = fake_commands({
            'systemctl': subprocess.TimeoutExpired(cmd='systemctl', timeout=5),
            'pgrep': (1, ''),
        })
        with ListeningSocket() as port:
            status = StatusProbe('dnsmasq', dns_port=port).get_status()
        self.assertEqual(status.state, STATUS_RUNNING)


class TestTimestampParsing(unittest.TestCase):

    def test_systemd_utc(self):
        started = parse_systemd_since('Fri 2015-05-15 15:08:26 UTC')
        self.assertEqual(started, datetime(2015, 5, 15, 15, 8, 26, tzinfo=timezone.utc))

    def test_systemd_local_zone(self):
        started = parse_systemd_since('Wed 2016-01-20 10:35:43 EST')
        self.assertIsNotNone(started.tzinfo)
        self.assertEqual((started.hour, started.minute), (10, 35))

    def test_systemd_garbage(self):
        self.assertIsNone(parse_systemd_since('a while ago'))

    def test_systemd_impossible_date(self):
        self.assertIsNone(parse_systemd_since('Fri 2015-13-40 15:08:26 UTC'))

    def test_ps_lstart(self):
        started = parse_ps_lstart('Sat May  2 09:01:02 2015')
        self.assertEqual((started.year, started.month, started.day, started.hour), (2015, 5, 2, 9))
        self.assertIsNone(parse_ps_lstart(''))
        self.assertIsNone(parse_ps_lstart('yesterday'))


if __name__ == '__main__':
    unittest.main()
