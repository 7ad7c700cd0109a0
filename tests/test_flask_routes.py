#!/usr/bin/env python3
"""
Test suite for the dnsmasq-sync Flask routes.

Routes run against a real DnsmasqManager on temporary fragment files, with
service control and the status probe mocked out.
"""

import os
import sys
import json
import shutil
import unittest
import tempfile
from datetime import timedelta
from unittest.mock import MagicMock

# Add the parent directory to the path so we can import app
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

try:
    import flask
    HAS_FLASK = True
except ImportError:
    HAS_FLASK = False

from config import DnsmasqSettings
from dnsmasq_manager import DnsmasqManager
from errors import HandoffTimeoutError, ServiceControlError
from models import ServiceStatus, STATUS_RUNNING


@unittest.skipIf(not HAS_FLASK, "Flask is not installed")
class TestFlaskRoutes(unittest.TestCase):
    """Test cases for the JSON API."""

    def setUp(self):
        """Set up test environment before each test."""
        from app import init_flask_server

        self.temp_dir = tempfile.mkdtemp()
        self.settings = DnsmasqSettings(
            config_dir=os.path.join(self.temp_dir, 'dnsmasq.d'),
            hosts_path=os.path.join(self.temp_dir, 'hosts'),
            leases_path=os.path.join(self.temp_dir, 'dnsmasq.leases'),
        )
        with open(self.settings.leases_path, 'w') as f:
            f.write("1700000000 aa:bb:cc:dd:ee:ff 192.168.1.50 laptop *\n")

        self.service_control = MagicMock()
        self.status_probe = MagicMock()
        self.manager = DnsmasqManager(self.settings, service_control=self.service_control,
                                      status_probe=self.status_probe)

        # Initialize the Flask app
        self.flask_app = init_flask_server(self.manager, port=8080, host='127.0.0.1')
        self.flask_app.config['TESTING'] = True
        self.client = self.flask_app.test_client()

    def tearDown(self):
        """Clean up after each test."""
        shutil.rmtree(self.temp_dir)

    def post_json(self, url, data, method='post'):
        return getattr(self.client, method)(url, data=json.dumps(data), content_type='application/json')

    def test_get_empty_config(self):
        response = self.client.get('/api/dnsmasq/config')
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['reservations'], [])
        self.assertEqual(body['data']['settings']['cache_size'], 150)
        self.assertEqual(body['data']['parse_warnings'], [])

    def test_put_config(self):
        config = self.client.get('/api/dnsmasq/config').get_json()['data']
        config['settings']['domain_name'] = 'lan'
        config['ranges'] = [{'start_ip': '192.168.1.100', 'end_ip': '192.168.1.200', 'tag': 'lan'}]

        response = self.post_json('/api/dnsmasq/config', config, method='put')
        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        self.assertEqual(data['settings']['domain_name'], 'lan')
        self.assertEqual(data['ranges'][0]['id'], 'range-0')
        self.assertEqual(data['ranges'][0]['lease_time'], '12h')

    def test_put_config_requires_object(self):
        response = self.post_json('/api/dnsmasq/config', ['not', 'an', 'object'], method='put')
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.get_json()['success'])

    def test_leases_and_promotion(self):
        leases = self.client.get('/api/dnsmasq/leases').get_json()['data']
        self.assertEqual(leases[0]['hostname'], 'laptop')

        response = self.post_json('/api/dnsmasq/leases/AA:BB:CC:DD:EE:FF/static', {'hostname': 'desk'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['data']['hostname'], 'desk')

        # Promoting again conflicts with the reservation just created
        response = self.post_json('/api/dnsmasq/leases/aa:bb:cc:dd:ee:ff/static', {})
        self.assertEqual(response.status_code, 409)

        response = self.post_json('/api/dnsmasq/leases/00:00:00:00:00:01/static', {})
        self.assertEqual(response.status_code, 404)

    def test_reservation_validation_error(self):
        response = self.post_json('/api/dnsmasq/reservations',
                                  {'mac_address': 'aabbccddeeff', 'ip_address': '192.168.1.60'})
        self.assertEqual(response.status_code, 400)
        body = response.get_json()
        self.assertEqual(body['field'], 'mac_address')

    def test_reservation_crud(self):
        response = self.post_json('/api/dnsmasq/reservations',
                                  {'mac_address': '11:22:33:44:55:66', 'ip_address': '192.168.1.60',
                                   'hostname': 'tv'})
        self.assertEqual(response.status_code, 201)
        reservation_id = response.get_json()['data']['id']

        response = self.post_json(f'/api/dnsmasq/reservations/{reservation_id}',
                                  {'mac_address': '11:22:33:44:55:66', 'ip_address': '192.168.1.61'},
                                  method='put')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['ip_address'], '192.168.1.61')

        response = self.client.get('/api/dnsmasq/reservations/mac/11:22:33:44:55:66')
        self.assertEqual(response.get_json()['data']['ip_address'], '192.168.1.61')

        response = self.client.delete(f'/api/dnsmasq/reservations/{reservation_id}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get('/api/dnsmasq/reservations').get_json()['data'], [])

    def test_range_and_option_routes(self):
        response = self.post_json('/api/dnsmasq/ranges', {'start_ip': '10.0.0.10', 'end_ip': '10.0.0.20'})
        self.assertEqual(response.status_code, 201)
        response = self.post_json('/api/dnsmasq/options', {'code': 3, 'value': '10.0.0.1'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['data']['code'], 3)

        self.assertEqual(len(self.client.get('/api/dnsmasq/ranges').get_json()['data']), 1)
        self.assertEqual(self.client.delete('/api/dnsmasq/options/option-0').status_code, 200)
        self.assertEqual(self.client.delete('/api/dnsmasq/options/option-0').status_code, 404)

    def test_dns_routes(self):
        response = self.post_json('/api/dnsmasq/dns', {'kind': 'A', 'name': 'nas', 'value': '10.0.0.5',
                                                       'aliases': ['files']})
        self.assertEqual(response.status_code, 201)
        response = self.post_json('/api/dnsmasq/dns', {'kind': 'CNAME', 'name': 'files', 'value': 'nas'})
        self.assertEqual(response.status_code, 409)

    def test_restart_and_reload(self):
        self.service_control.restart.return_value = ''
        response = self.client.post('/api/dnsmasq/restart')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()['success'])

        self.service_control.reload.side_effect = HandoffTimeoutError('Timed out after 10.0s')
        self.assertEqual(self.client.post('/api/dnsmasq/reload').status_code, 504)

        self.service_control.restart.side_effect = ServiceControlError('Failed to restart dnsmasq', 'boom')
        response = self.client.post('/api/dnsmasq/restart')
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.get_json()['error'], 'Failed to restart dnsmasq')

    def test_status(self):
        self.status_probe.get_status.return_value = ServiceStatus(
            STATUS_RUNNING, timedelta(days=1, hours=2, minutes=3), 'running')
        data = self.client.get('/api/dnsmasq/status').get_json()['data']
        self.assertEqual(data['status'], 'running')
        self.assertEqual(data['uptime'], '1d 2h 3m')

    def test_health_check(self):
        body = self.client.get('/api/health-check').get_json()
        self.assertEqual(body['status'], 'ok')
        self.assertEqual(body['control_mode'], 'direct')


if __name__ == '__main__':
    unittest.main()
