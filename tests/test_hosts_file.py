#!/usr/bin/env python3
"""
Tests for the hosts-style address record fragment.
"""

import os
import sys
import unittest

# Add the parent directory to the path so we can import the modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from hosts_file import parse_hosts, serialize_hosts
from models import DnsRecord


class TestHostsFile(unittest.TestCase):
    """Test cases for parse_hosts and serialize_hosts."""

    def test_parse_ipv4_and_ipv6(self):
        records = parse_hosts(
            "# Local hosts\n"
            "192.168.1.10\tserver  # the NAS\n"
            "fd00::10 server6\n")
        self.assertEqual(len(records), 2)
        self.assertEqual((records[0].kind, records[0].name, records[0].value), ('A', 'server', '192.168.1.10'))
        self.assertEqual(records[0].id, 'dns-a-0')
        self.assertEqual((records[1].kind, records[1].value), ('AAAA', 'fd00::10'))
        self.assertEqual(records[1].id, 'dns-aaaa-1')

    def test_last_entry_wins_for_repeated_name(self):
        records = parse_hosts("192.168.1.10 server\n192.168.1.11 server\n")
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].value, '192.168.1.11')

    def test_invalid_lines_are_reported(self):
        warnings = []
        records = parse_hosts("not-an-ip host\nlonely\n192.168.1.12 a\n", warnings)
        self.assertEqual([r.name for r in records], ['a'])
        self.assertEqual(len(warnings), 2)

    def test_extra_names_become_aliases(self):
        warnings = []
        records = parse_hosts("192.168.1.12 nas files backup\n", warnings)
        self.assertEqual(records[0].name, 'nas')
        self.assertEqual(records[0].aliases, ['files', 'backup'])
        self.assertEqual(warnings, [])

    def test_redefined_name_takes_aliases_from_last_line(self):
        records = parse_hosts("192.168.1.10 nas old\n192.168.1.11 nas new\n")
        self.assertEqual((records[0].value, records[0].aliases), ('192.168.1.11', ['new']))

    def test_serialize_skips_non_address_records(self):
        records = [
            DnsRecord('dns-a-0', 'A', 'server', '192.168.1.10', aliases=['www']),
            DnsRecord('dns-cname-0', 'CNAME', 'docs', 'wiki.example.com'),
        ]
        self.assertEqual(serialize_hosts(records), "192.168.1.10\tserver\n")
        self.assertEqual(serialize_hosts([]), '')

    def test_round_trip(self):
        records = [
            DnsRecord('dns-a-0', 'A', 'server', '192.168.1.10'),
            DnsRecord('dns-aaaa-1', 'AAAA', 'server6', 'fd00::10'),
        ]
        self.assertEqual(parse_hosts(serialize_hosts(records)), records)


if __name__ == '__main__':
    unittest.main()
