#!/usr/bin/env python3
"""
Flask Route Handlers for dnsmasq-sync

JSON endpoints under /api/dnsmasq that forward to the DnsmasqManager stored
in the app config. Every response uses the envelope

    {"success": true, "data": ...}  or  {"success": false, "error": "..."}

Engine errors are mapped to HTTP status codes in one place.
"""

import logging
from flask import Blueprint, current_app, jsonify, request

from errors import (ConflictError, DnsmasqError, HandoffTimeoutError, NotFoundError,
                    ServiceControlError, StoreIOError, ValidationError)
from models import AggregateConfig, DhcpOption, DhcpRange, DnsRecord, StaticReservation

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('flask_routes')

# Create Blueprint for routes
routes = Blueprint('routes', __name__, url_prefix='/api')

# Most specific first
ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (HandoffTimeoutError, 504),
    (ServiceControlError, 502),
    (StoreIOError, 500),
)


#
# Helper Functions
#
def get_manager():
    return current_app.config['DNSMASQ_MANAGER']


def success(data=None, message=None, status=200):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    return jsonify(body), status


def request_json() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('body', 'Request body must be a JSON object')
    return data


@routes.errorhandler(DnsmasqError)
def handle_engine_error(error):
    status = 500
    for error_type, error_status in ERROR_STATUS:
        if isinstance(error, error_type):
            status = error_status
            break
    if status >= 500:
        logger.error(f"{request.method} {request.path} failed: {error}")
    else:
        logger.info(f"{request.method} {request.path} rejected: {error}")

    body = {'success': False, 'error': str(error)}
    if isinstance(error, ValidationError):
        body['field'] = error.field
    return jsonify(body), status


#
# Aggregate configuration
#
@routes.route('/dnsmasq/config', methods=['GET'])
def get_config():
    manager = get_manager()
    cfg = manager.get_aggregate_config()
    data = cfg.to_dict()
    data['parse_warnings'] = manager.parse_warnings
    return success(data)


@routes.route('/dnsmasq/config', methods=['PUT'])
def update_config():
    try:
        cfg = AggregateConfig.from_dict(request_json())
    except (TypeError, ValueError, AttributeError) as e:
        raise ValidationError('body', f'Invalid configuration: {e}') from e
    updated = get_manager().update_aggregate_config(cfg)
    return success(updated.to_dict(), 'Configuration updated successfully')


#
# Leases
#
@routes.route('/dnsmasq/leases', methods=['GET'])
def get_leases():
    return success([lease.to_dict() for lease in get_manager().get_leases()])


@routes.route('/dnsmasq/leases/<mac_address>/static', methods=['POST'])
def promote_lease(mac_address):
    data = request.get_json(silent=True) or {}
    reservation = get_manager().promote_lease_to_reservation(mac_address, data.get('hostname'))
    return success(reservation.to_dict(), 'Lease converted to static reservation', 201)


#
# Service control
#
@routes.route('/dnsmasq/restart', methods=['POST'])
def restart():
    output = get_manager().restart()
    return success({'output': output}, 'DNSmasq service restarted successfully')


@routes.route('/dnsmasq/reload', methods=['POST'])
def reload():
    output = get_manager().reload()
    return success({'output': output}, 'DNSmasq configuration reloaded successfully')


@routes.route('/dnsmasq/status', methods=['GET'])
def status():
    return success(get_manager().get_status().to_dict())


#
# Per-kind CRUD
#
def _entity(model, data: dict, entity_id=None):
    try:
        entity = model.from_dict(data)
    except (TypeError, ValueError, AttributeError) as e:
        raise ValidationError('body', f'Invalid {model.__name__}: {e}') from e
    if entity_id is not None:
        entity.id = entity_id
    return entity


@routes.route('/dnsmasq/ranges', methods=['GET'])
def list_ranges():
    return success([r.to_dict() for r in get_manager().list_ranges()])


@routes.route('/dnsmasq/ranges', methods=['POST'])
def add_range():
    created = get_manager().add_range(_entity(DhcpRange, request_json()))
    return success(created.to_dict(), 'DHCP range added', 201)


@routes.route('/dnsmasq/ranges/<range_id>', methods=['GET'])
def get_range(range_id):
    return success(get_manager().get_range(range_id).to_dict())


@routes.route('/dnsmasq/ranges/<range_id>', methods=['PUT'])
def update_range(range_id):
    updated = get_manager().update_range(range_id, _entity(DhcpRange, request_json(), range_id))
    return success(updated.to_dict(), 'DHCP range updated')


@routes.route('/dnsmasq/ranges/<range_id>', methods=['DELETE'])
def delete_range(range_id):
    get_manager().delete_range(range_id)
    return success(message='DHCP range deleted')


@routes.route('/dnsmasq/options', methods=['GET'])
def list_options():
    return success([o.to_dict() for o in get_manager().list_options()])


@routes.route('/dnsmasq/options', methods=['POST'])
def add_option():
    created = get_manager().add_option(_entity(DhcpOption, request_json()))
    return success(created.to_dict(), 'DHCP option added', 201)


@routes.route('/dnsmasq/options/<option_id>', methods=['GET'])
def get_option(option_id):
    return success(get_manager().get_option(option_id).to_dict())


@routes.route('/dnsmasq/options/<option_id>', methods=['PUT'])
def update_option(option_id):
    updated = get_manager().update_option(option_id, _entity(DhcpOption, request_json(), option_id))
    return success(updated.to_dict(), 'DHCP option updated')


@routes.route('/dnsmasq/options/<option_id>', methods=['DELETE'])
def delete_option(option_id):
    get_manager().delete_option(option_id)
    return success(message='DHCP option deleted')


@routes.route('/dnsmasq/reservations', methods=['GET'])
def list_reservations():
    return success([r.to_dict() for r in get_manager().list_reservations()])


@routes.route('/dnsmasq/reservations', methods=['POST'])
def add_reservation():
    created = get_manager().add_reservation(_entity(StaticReservation, request_json()))
    return success(created.to_dict(), 'Static reservation added', 201)


@routes.route('/dnsmasq/reservations/<reservation_id>', methods=['GET'])
def get_reservation(reservation_id):
    return success(get_manager().get_reservation(reservation_id).to_dict())


@routes.route('/dnsmasq/reservations/<reservation_id>', methods=['PUT'])
def update_reservation(reservation_id):
    updated = get_manager().update_reservation(reservation_id, _entity(StaticReservation, request_json()))
    return success(updated.to_dict(), 'Static reservation updated')


@routes.route('/dnsmasq/reservations/<reservation_id>', methods=['DELETE'])
def delete_reservation(reservation_id):
    get_manager().delete_reservation(reservation_id)
    return success(message='Static reservation deleted')


@routes.route('/dnsmasq/reservations/mac/<mac_address>', methods=['GET'])
def get_reservation_by_mac(mac_address):
    return success(get_manager().get_reservation_by_mac(mac_address).to_dict())


@routes.route('/dnsmasq/reservations/mac/<mac_address>', methods=['PUT'])
def update_reservation_by_mac(mac_address):
    updated = get_manager().update_reservation_by_mac(mac_address, _entity(StaticReservation, request_json()))
    return success(updated.to_dict(), 'Static reservation updated')


@routes.route('/dnsmasq/reservations/mac/<mac_address>', methods=['DELETE'])
def delete_reservation_by_mac(mac_address):
    get_manager().delete_reservation_by_mac(mac_address)
    return success(message='Static reservation deleted')


@routes.route('/dnsmasq/dns', methods=['GET'])
def list_dns_records():
    return success([r.to_dict() for r in get_manager().list_dns_records()])


@routes.route('/dnsmasq/dns', methods=['POST'])
def add_dns_record():
    created = get_manager().add_dns_record(_entity(DnsRecord, request_json()))
    return success(created.to_dict(), 'DNS record added', 201)


@routes.route('/dnsmasq/dns/<record_id>', methods=['GET'])
def get_dns_record(record_id):
    return success(get_manager().get_dns_record(record_id).to_dict())


@routes.route('/dnsmasq/dns/<record_id>', methods=['PUT'])
def update_dns_record(record_id):
    updated = get_manager().update_dns_record(record_id, _entity(DnsRecord, request_json(), record_id))
    return success(updated.to_dict(), 'DNS record updated')


@routes.route('/dnsmasq/dns/<record_id>', methods=['DELETE'])
def delete_dns_record(record_id):
    get_manager().delete_dns_record(record_id)
    return success(message='DNS record deleted')


# API Endpoints
@routes.route('/health-check', methods=['GET'])
def api_health_check():
    """API endpoint for health checks."""
    manager = current_app.config.get('DNSMASQ_MANAGER')
    return jsonify({
        'status': 'ok',
        'manager': manager is not None,
        'control_mode': manager.settings.control_mode if manager else None
    })
