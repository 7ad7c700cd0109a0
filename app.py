#!/usr/bin/env python3
"""
Flask API for dnsmasq-sync

Serves the JSON API that manages dnsmasq's configuration fragments and
controls the daemon. Paths and the control strategy come from DNSMASQ_*
environment variables (see config.py).
"""

import logging
from typing import Optional
from flask import Flask

# Import route handlers
from flask_routes import routes

from config import DnsmasqSettings, CONTROL_MODES
from dnsmasq_manager import DnsmasqManager

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('flask_api')


def create_app(manager: DnsmasqManager) -> Flask:
    """Create the Flask app serving the given manager."""
    app = Flask(__name__)
    app.config['DNSMASQ_MANAGER'] = manager
    app.register_blueprint(routes)
    return app


# Initialize Flask server
def init_flask_server(manager: Optional[DnsmasqManager] = None, port: int = 8080,
                      host: str = '0.0.0.0') -> Flask:
    """Initialize the Flask server, building the manager from the environment if needed."""
    if manager is None:
        manager = DnsmasqManager(DnsmasqSettings.from_env())

    app = create_app(manager)
    app.config['HOST'] = host
    app.config['PORT'] = port

    settings = manager.settings
    logger.info(f"Managing dnsmasq fragments in {settings.config_dir} "
                f"(hosts: {settings.hosts_path}, control: {settings.control_mode})")
    return app


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description='dnsmasq configuration API')
    parser.add_argument('--port', type=int, default=8080, help='API port (default: 8080)')
    parser.add_argument('--interface', default='0.0.0.0', help='Interface to bind to (default: 0.0.0.0)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    parser.add_argument('--control-mode', choices=CONTROL_MODES,
                        help='How to restart dnsmasq (default: DNSMASQ_CONTROL_MODE or direct)')

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)

    try:
        settings = DnsmasqSettings.from_env()
        if args.control_mode:
            settings.control_mode = args.control_mode
    except ValueError as e:
        parser.error(str(e))

    app = init_flask_server(DnsmasqManager(settings), port=args.port, host=args.interface)

    # Run the Flask app
    app.run(host=args.interface, port=args.port, debug=args.debug, threaded=True)


if __name__ == '__main__':
    main()
