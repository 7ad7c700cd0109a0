#!/usr/bin/env python3
"""
Tests for the lease file reader.
"""

import os
import sys
import shutil
import unittest
import tempfile
from datetime import datetime

# Add the parent directory to the path so we can import the modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from leases import LeaseReader, parse_leases

LEASES = (
    "1700000000 AA:BB:CC:DD:EE:FF 192.168.1.50 laptop 01:aa:bb:cc:dd:ee:ff\n"
    "0 11:22:33:44:55:66 192.168.1.51 * *\n"
    "\n"
    "1700000300 00:11:22:33:44:55\n"
    "soon 00:11:22:33:44:56 192.168.1.52\n"
    "1700000600 66:55:44:33:22:11 192.168.1.53\n"
)


class TestParseLeases(unittest.TestCase):

    def test_parse(self):
        warnings = []
        leases = parse_leases(LEASES, warnings)
        self.assertEqual(len(leases), 3)
        self.assertEqual(len(warnings), 2)

        first = leases[0]
        self.assertEqual(first.expiry, datetime.fromtimestamp(1700000000))
        self.assertEqual(first.mac_address, 'aa:bb:cc:dd:ee:ff')
        self.assertEqual(first.ip_address, '192.168.1.50')
        self.assertEqual(first.hostname, 'laptop')
        self.assertEqual(first.client_id, '01:aa:bb:cc:dd:ee:ff')

    def test_infinite_lease_and_unset_fields(self):
        lease = parse_leases(LEASES)[1]
        self.assertIsNone(lease.expiry)
        self.assertIsNone(lease.hostname)
        self.assertIsNone(lease.client_id)
        self.assertIn('Expires: never', str(lease))

    def test_optional_fields_missing(self):
        lease = parse_leases(LEASES)[2]
        self.assertIsNone(lease.hostname)
        self.assertEqual(lease.to_dict()['ip_address'], '192.168.1.53')

    def test_out_of_range_expiry_is_skipped(self):
        warnings = []
        leases = parse_leases(
            "99999999999999999 aa:bb:cc:dd:ee:ff 10.0.0.1 broken *\n"
            "1700000000 11:22:33:44:55:66 10.0.0.2 fine *\n", warnings)
        self.assertEqual([lease.hostname for lease in leases], ['fine'])
        self.assertEqual(len(warnings), 1)
        self.assertIn('out of range', warnings[0])


class TestLeaseReader(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.leases_path = os.path.join(self.temp_dir, 'dnsmasq.leases')

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_missing_file_means_no_leases(self):
        self.assertEqual(LeaseReader(self.leases_path).read(), [])

    def test_find_by_mac_is_case_insensitive(self):
        with open(self.leases_path, 'w') as f:
            f.write(LEASES)
        reader = LeaseReader(self.leases_path)
        self.assertEqual(len(reader.read()), 3)
        self.assertEqual(reader.find_by_mac('AA:BB:CC:DD:EE:FF').ip_address, '192.168.1.50')
        self.assertIsNone(reader.find_by_mac('de:ad:be:ef:00:00'))


if __name__ == '__main__':
    unittest.main()
