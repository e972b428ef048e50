#!/usr/bin/env python3
"""
Command line interface for tinysubnets

Operator commands run against the lease file directly and must only be used
while the broker is stopped; `request` talks to a running broker instead.
"""

import argparse
import logging
import sys

from .. import __version__
from ..common.config import ConfigError
from .broker import register_broker_commands
from .leases import register_lease_commands

REGISTRARS = (register_broker_commands, register_lease_commands)

EXAMPLES = """\
examples:
  tinysubnets serve -c /etc/tinysubnets/config.yaml
  tinysubnets request aa:bb:cc:dd:ee:01 -i lan1 -n laptop
  tinysubnets leases list
"""


def create_parser():
    parser = argparse.ArgumentParser(
        prog='tinysubnets',
        description='/30 lease allocation engine and broker',
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'tinysubnets {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug messages')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    for register in REGISTRARS:
        register(subparsers)
    return parser


def configure_logging(verbose):
    """Debug logging for -v; long-running services set up their own handlers otherwise"""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(levelname)s - %(message)s')
        logging.getLogger('tinysubnets').setLevel(logging.DEBUG)


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.verbose)
    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except ConfigError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
