"""
Lease file inspection and maintenance commands
"""

import sys
from datetime import datetime, timezone

from ..common.addresses import ip_to_int
from ..common.config import load_config
from ..utils.allocator import LeaseEngine


def register_lease_commands(subparsers):
    """Register lease management commands"""
    leases_parser = subparsers.add_parser('leases', help='Inspect and edit the lease file')
    leases_parser.set_defaults(func=lambda args: args.parser.print_help(), parser=leases_parser)
    leases_subparsers = leases_parser.add_subparsers(dest='leases_command', help='Lease commands')

    list_parser = leases_subparsers.add_parser('list', help='List leases')
    list_parser.add_argument('-c', '--config', help='Configuration file')
    list_parser.set_defaults(func=leases_list)

    # Only safe while the broker is stopped, it keeps its own copy of the table
    delete_parser = leases_subparsers.add_parser('delete', help='Delete a lease (stop the broker first)')
    delete_parser.add_argument('key', help='MAC address or identifier')
    delete_parser.add_argument('-c', '--config', help='Configuration file')
    delete_parser.set_defaults(func=leases_delete)


def _engine(args):
    return LeaseEngine(load_config(args.config)).load()


def leases_list(args):
    """List all leases in the lease file"""
    leases = _engine(args).leases()
    if not leases:
        print("No leases found")
        return

    print(f"{'Client':<24} {'IP':<15} {'Router':<15} {'Expires':<19} {'Status'}")
    print("-" * 85)

    now = datetime.now(timezone.utc)
    for client_key, lease in sorted(leases.items(), key=lambda x: ip_to_int(x[1].ip)):
        expires = lease.expires.astimezone().strftime('%Y-%m-%d %H:%M:%S')
        status = 'Expired' if lease.is_expired(now) else 'Active'
        print(f"{client_key:<24} {lease.ip:<15} {lease.router_ip:<15} {expires:<19} {status}")


def leases_delete(args):
    """Delete a single lease"""
    if _engine(args).delete_lease(args.key):
        print(f"Deleted lease for {args.key}")
    else:
        print(f"No lease deleted for {args.key}")
        sys.exit(1)
