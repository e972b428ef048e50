"""
Lease broker

Local HTTP API in front of the lease engine so that packet handling can live
in a separate process. It only listens on a Unix domain socket: requests
carry no authentication, so the socket's file permissions are the access
control.

Endpoints:
- PUT /dhcpRequest  {MAC, Identifier, Name, Iface, SubnetMask?} -> {IP, RouterIP, DNSIP, LeaseTime}
- PUT /DHCPRequest  {Identifier}                                -> same response, for abstract devices
- GET /health
- GET /leases
"""

import logging
import os
import sys
import threading
from datetime import datetime

from flask import Flask, jsonify, request
from werkzeug.serving import make_server

from ..common.addresses import (
    block_size_from_mask,
    format_duration,
    normalize_mac,
    sanitize,
    sanitize_hostname,
)
from ..common.config import ConfigError, load_config
from ..utils.allocator import LeaseEngine
from ..utils.notifier import get_notifier

logger = logging.getLogger(__name__)

TEXT_PLAIN = {'Content-Type': 'text/plain; charset=utf-8'}


def _error(message, status=400):
    return f"{message}\n", status, TEXT_PLAIN


def _string_field(body, name):
    value = body.get(name, '')
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def valid_identifier(identifier):
    """Abstract identifiers must be non-empty single tokens"""
    return bool(identifier) and (
        identifier.strip() == identifier
        and ' ' not in identifier
        and '\n' not in identifier
    )


def create_app(engine, notifier=None, dns_override=None, upstream_interface=None):
    """Build the broker Flask application around a loaded LeaseEngine"""
    app = Flask(__name__)

    def lease_response(record):
        return jsonify({
            'IP': record.ip,
            'RouterIP': record.router_ip,
            'DNSIP': dns_override or '',
            'LeaseTime': format_duration(engine.lease_time),
        })

    @app.before_request
    def log_request():
        logger.info(f"{request.remote_addr or 'unix'} {request.method} {request.path}")

    @app.route('/dhcpRequest', methods=['PUT'])
    def dhcp_request():
        """Lease request forwarded by the DHCP packet handler"""
        body = request.get_json(force=True, silent=True)
        if not isinstance(body, dict):
            return _error("Invalid request body")

        try:
            mac = _string_field(body, 'MAC')
            identifier = _string_field(body, 'Identifier')
            hostname = sanitize_hostname(_string_field(body, 'Name'))
            interface = sanitize(_string_field(body, 'Iface'))
            block_size = block_size_from_mask(_string_field(body, 'SubnetMask'))
        except ValueError as e:
            return _error(str(e))

        if mac:
            try:
                client_key = normalize_mac(mac)
            except ValueError as e:
                return _error(str(e))
        else:
            client_key = sanitize(identifier)
        if not client_key:
            return _error("MAC or Identifier is required")

        if upstream_interface and interface == upstream_interface:
            logger.warning(f"Rejected lease request for {client_key} from upstream interface {interface}")
            return _error("Requests from the upstream interface are not served")

        record = engine.request_lease(client_key, block_size=block_size)
        if record is None:
            return _error("Failed to get IP")

        logger.info(f"found IP address {record.ip} for {client_key} ({hostname}) on {interface or 'unknown'}")
        if notifier is not None:
            notifier.notify(record, hostname=hostname, interface=interface)
        return lease_response(record)

    @app.route('/DHCPRequest', methods=['PUT'])
    def abstract_dhcp_request():
        """Lease for a device that never speaks DHCP itself"""
        body = request.get_json(force=True, silent=True)
        if not isinstance(body, dict):
            return _error("Invalid request body")

        identifier = body.get('Identifier')
        if not isinstance(identifier, str) or not valid_identifier(identifier):
            return _error("Invalid Identifier")

        record = engine.request_lease(identifier)
        if record is None:
            return _error("Failed to get IP")
        return lease_response(record)

    @app.route('/health')
    def health():
        stats = engine.stats()
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            **stats,
        })

    @app.route('/leases')
    def leases():
        leases_data = {
            client_key: {
                'ip': record.ip,
                'router_ip': record.router_ip,
                'expires': record.expires.isoformat(),
            }
            for client_key, record in engine.leases().items()
        }
        return jsonify({
            'leases': leases_data,
            'count': len(leases_data),
            'timestamp': datetime.now().isoformat(),
        })

    return app


class BrokerServer:
    """Threaded WSGI server for the broker bound to a Unix domain socket"""

    def __init__(self, app, socket_path, mode=0o660):
        self.app = app
        self.socket_path = socket_path
        self.mode = mode
        self.server = None
        self.thread = None

    def _bind(self):
        directory = os.path.dirname(self.socket_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if os.path.exists(self.socket_path):
            os.remove(self.socket_path)
        self.server = make_server(f"unix://{self.socket_path}", 0, self.app, threaded=True)
        os.chmod(self.socket_path, self.mode)
        logger.info(f"Lease broker listening on {self.socket_path}")

    def start(self):
        """Serve in a background thread"""
        self._bind()
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def serve_forever(self):
        """Serve in the calling thread until interrupted"""
        self._bind()
        try:
            self.server.serve_forever()
        finally:
            self.stop()

    def stop(self):
        if self.server:
            if self.thread:
                self.server.shutdown()
                self.thread.join()
                self.thread = None
            self.server.server_close()
            self.server = None
            if os.path.exists(self.socket_path):
                os.remove(self.socket_path)
            logger.info("Lease broker stopped")


def main(config_path=None):
    """Load the lease table and serve the broker until interrupted"""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        config = load_config(config_path)
        engine = LeaseEngine(config).load()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    app = create_app(
        engine,
        notifier=get_notifier(config),
        dns_override=config.dns_override,
        upstream_interface=config.upstream_interface,
    )
    server = BrokerServer(app, config.socket_path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Lease broker interrupted")
