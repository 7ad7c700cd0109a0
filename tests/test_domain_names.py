#!/usr/bin/env python3
"""
Tests for local domain expansion on alias records.
"""

import os
import sys
import unittest

# Add the parent directory to the path so we can import the modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from domain_names import expand_alias, expand_name, name_key, strip_alias, strip_name


class TestDomainNames(unittest.TestCase):

    def test_expand_bare_name(self):
        self.assertEqual(expand_name('server', 'lan'), 'server.lan')

    def test_expand_is_idempotent(self):
        once = expand_name('server', 'lan')
        self.assertEqual(expand_name(once, 'lan'), once)
        self.assertEqual(expand_name('www.example.com', 'lan'), 'www.example.com')

    def test_strip(self):
        self.assertEqual(strip_name('server.lan', 'lan'), 'server')
        self.assertEqual(strip_name('server.example.com', 'lan'), 'server.example.com')
        self.assertEqual(strip_name('server', 'lan'), 'server')
        # 'plan' does not end with '.lan'
        self.assertEqual(strip_name('plan', 'lan'), 'plan')

    def test_no_domain_is_a_no_op(self):
        for domain in (None, ''):
            self.assertEqual(expand_name('server', domain), 'server')
            self.assertEqual(strip_name('server.lan', domain), 'server.lan')

    def test_alias_pairs(self):
        self.assertEqual(expand_alias('www', 'server', 'lan'), ('www.lan', 'server.lan'))
        self.assertEqual(strip_alias('www.lan', 'server.lan', 'lan'), ('www', 'server'))
        self.assertEqual(strip_alias(*expand_alias('www', 'cdn.example.com', 'lan'), 'lan'),
                         ('www', 'cdn.example.com'))

    def test_name_key(self):
        self.assertEqual(name_key('WWW.LAN', 'lan'), 'www')
        self.assertEqual(name_key('www', 'LAN'), 'www')
        self.assertEqual(name_key('Www.example.com', 'lan'), 'www.example.com')
        self.assertEqual(name_key('Server', None), 'server')


if __name__ == '__main__':
    unittest.main()
