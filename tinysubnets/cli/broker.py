"""
Broker and DHCP responder commands
"""

import os
import sys

from ..common.config import DEFAULT_SOCKET_PATH
from ..services.broker_client import BrokerClient, LeaseUnavailable


def register_broker_commands(subparsers):
    """Register service and lease request commands"""
    serve_parser = subparsers.add_parser('serve', help='Run the lease broker on its Unix socket')
    serve_parser.add_argument('-c', '--config', help='Configuration file')
    serve_parser.set_defaults(func=broker_serve)

    dhcp_parser = subparsers.add_parser('dhcp', help='Run the DHCP responder (requires root)')
    dhcp_parser.add_argument('-c', '--config', help='Configuration file')
    dhcp_parser.set_defaults(func=dhcp_serve)

    request_parser = subparsers.add_parser('request', help='Request a lease from a running broker')
    request_parser.add_argument('key', help='MAC address or identifier')
    request_parser.add_argument('-i', '--iface', default='', help='Interface the request arrived on')
    request_parser.add_argument('-n', '--name', default='', help='Client hostname')
    request_parser.add_argument('--abstract', action='store_true',
                                help='Request as an abstract device (identifier only)')
    request_parser.add_argument('-s', '--socket',
                                default=os.environ.get('TINYSUBNETS_SOCKET', DEFAULT_SOCKET_PATH),
                                help='Broker socket path')
    request_parser.set_defaults(func=broker_request)


def broker_serve(args):
    """Run the lease broker"""
    from ..services import broker
    broker.main(args.config)


def dhcp_serve(args):
    """Run the DHCP responder"""
    from ..services import dhcp_server
    dhcp_server.main(args.config)


def broker_request(args):
    """Request a lease and print it"""
    client = BrokerClient(args.socket)
    try:
        if args.abstract:
            lease = client.request_abstract(args.key)
        else:
            lease = client.request_lease(args.key, args.iface, args.name)
    except LeaseUnavailable as e:
        print(f"No lease: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        client.close()

    print(f"IP:         {lease.ip}")
    print(f"Router:     {lease.router_ip}")
    print(f"DNS:        {lease.dns_ip or '-'}")
    print(f"Lease time: {int(lease.lease_time.total_seconds())}s")
