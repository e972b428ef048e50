"""
Engine configuration

Settings come from a YAML file (path in TINYSUBNETS_CONFIG or passed on the
command line) with a few environment overrides. Every value is validated
here so that a bad range or duration stops the process at startup rather
than failing individual requests later.
"""

import logging
import os
from dataclasses import dataclass
from datetime import timedelta

import yaml

from .addresses import BLOCK_SIZE, ip_to_int, parse_duration, parse_ipv4, sanitize

logger = logging.getLogger(__name__)

# Defaults
DEFAULT_CONFIG_PATH = '/etc/tinysubnets/config.yaml'
DEFAULT_SOCKET_PATH = '/state/dhcp/tinysubnets_plugin'
DEFAULT_LEASE_FILE = '/state/dhcp/leases.json'
DEFAULT_LEASE_TIME = '12h'
DEFAULT_NOTIFY_TIMEOUT = 10


class ConfigError(ValueError):
    """Invalid or missing configuration, fatal at startup"""


@dataclass
class EngineConfig:
    range_start: str
    range_end: str
    lease_time: timedelta
    lease_file: str = DEFAULT_LEASE_FILE
    socket_path: str = DEFAULT_SOCKET_PATH
    dns_override: str = None
    upstream_interface: str = None
    notify_script: str = None
    notify_timeout: float = DEFAULT_NOTIFY_TIMEOUT
    interface: str = None

    @property
    def start_int(self):
        return ip_to_int(self.range_start)

    @property
    def end_int(self):
        return ip_to_int(self.range_end)

    @property
    def block_count(self):
        """Number of /30 blocks the range can hold"""
        span = self.end_int - self.start_int
        return max(0, (span - 3 + BLOCK_SIZE - 1) // BLOCK_SIZE)


def _address(settings, key, required=True):
    value = settings.get(key)
    if value in (None, ''):
        if required:
            raise ConfigError(f"missing required setting: {key}")
        return None
    try:
        return str(parse_ipv4(str(value)))
    except ValueError as e:
        raise ConfigError(f"invalid IPv4 address for {key}: {value}") from e


def build_config(settings):
    """Validate a settings mapping and return an EngineConfig"""
    if not isinstance(settings, dict):
        raise ConfigError("configuration must be a mapping")

    range_start = _address(settings, 'range_start')
    range_end = _address(settings, 'range_end')
    if ip_to_int(range_start) >= ip_to_int(range_end):
        raise ConfigError("start of IP range has to be lower than the end of an IP range")

    lease_time_text = str(settings.get('lease_time', DEFAULT_LEASE_TIME))
    try:
        lease_time = parse_duration(lease_time_text)
    except ValueError as e:
        raise ConfigError(f"invalid lease duration: {lease_time_text}") from e
    if lease_time.total_seconds() <= 0:
        raise ConfigError(f"lease duration must be positive: {lease_time_text}")

    block_size = settings.get('block_size', BLOCK_SIZE)
    if block_size != BLOCK_SIZE:
        raise ConfigError(f"only /30 blocks of {BLOCK_SIZE} addresses are supported, got {block_size}")

    lease_file = settings.get('lease_file') or DEFAULT_LEASE_FILE
    if not str(lease_file).strip():
        raise ConfigError("file name cannot be empty")

    try:
        notify_timeout = float(settings.get('notify_timeout', DEFAULT_NOTIFY_TIMEOUT))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid notify_timeout: {settings.get('notify_timeout')}") from e
    if notify_timeout <= 0:
        raise ConfigError("notify_timeout must be positive")

    upstream = settings.get('upstream_interface')

    config = EngineConfig(
        range_start=range_start,
        range_end=range_end,
        lease_time=lease_time,
        lease_file=str(lease_file),
        socket_path=str(settings.get('socket_path') or DEFAULT_SOCKET_PATH),
        dns_override=_address(settings, 'dns_override', required=False),
        upstream_interface=sanitize(upstream) if upstream else None,
        notify_script=settings.get('notify_script') or None,
        notify_timeout=notify_timeout,
        interface=settings.get('interface') or None,
    )

    if config.block_count == 0:
        raise ConfigError(f"range {range_start}-{range_end} cannot hold a single /30 block")

    return config


def load_config(path=None):
    """Load configuration from YAML, applying environment overrides"""
    path = path or os.environ.get('TINYSUBNETS_CONFIG', DEFAULT_CONFIG_PATH)

    try:
        with open(path) as f:
            settings = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"could not parse {path}: {e}") from e

    socket_path = os.environ.get('TINYSUBNETS_SOCKET')
    if socket_path:
        settings['socket_path'] = socket_path

    config = build_config(settings)
    logger.info(f"Loaded configuration from {path}: range {config.range_start}-{config.range_end}, "
                f"{config.block_count} blocks")
    return config
