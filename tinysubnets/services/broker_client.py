"""
Client side of the lease broker

Used by the DHCP packet handler (and the CLI) to ask the broker for a lease
over its Unix socket. Every failure surfaces as LeaseUnavailable; callers
must treat it as "no lease" and never fall back to a cached address.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import quote

import requests
import requests_unixsocket

from ..common.addresses import normalize_mac, parse_duration, parse_ipv4
from ..common.config import DEFAULT_SOCKET_PATH

logger = logging.getLogger(__name__)


class LeaseUnavailable(Exception):
    """The broker could not be reached or did not grant a lease"""


@dataclass(frozen=True)
class LeaseResponse:
    ip: str
    router_ip: str
    dns_ip: str
    lease_time: timedelta

    @classmethod
    def from_json(cls, data):
        """Validate a broker response body, raising ValueError on bad fields"""
        if not isinstance(data, dict):
            raise ValueError("response body is not an object")
        dns_ip = data.get('DNSIP') or None
        return cls(
            ip=str(parse_ipv4(data['IP'])),
            router_ip=str(parse_ipv4(data['RouterIP'])),
            dns_ip=str(parse_ipv4(dns_ip)) if dns_ip else None,
            lease_time=parse_duration(data['LeaseTime']),
        )


class BrokerClient:

    def __init__(self, socket_path=DEFAULT_SOCKET_PATH, timeout=None):
        self.socket_path = socket_path
        self.timeout = timeout
        self.session = requests_unixsocket.Session()

    def url(self, path):
        return f"http+unix://{quote(self.socket_path, safe='')}{path}"

    def _put(self, path, payload):
        try:
            response = self.session.put(self.url(path), json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise LeaseUnavailable(f"lease broker at {self.socket_path} unreachable: {e}") from e

        if response.status_code != 200:
            raise LeaseUnavailable(f"lease broker refused request ({response.status_code}): "
                                   f"{response.text.strip()}")
        try:
            return LeaseResponse.from_json(response.json())
        except (KeyError, TypeError, ValueError) as e:
            raise LeaseUnavailable(f"could not decode lease broker response: {e}") from e

    def request_lease(self, client_key, interface_name='', host_name='', subnet_mask=''):
        """Request a lease for a DHCP client, keyed by MAC address or identifier.

        subnet_mask is the netmask the caller will hand out; the broker refuses
        to allocate a new block that does not match it.
        """
        try:
            mac, identifier = normalize_mac(client_key), ''
        except ValueError:
            mac, identifier = '', client_key
        payload = {
            'MAC': mac,
            'Identifier': identifier,
            'Name': host_name or '',
            'Iface': interface_name or '',
            'SubnetMask': subnet_mask or '',
        }
        lease = self._put('/dhcpRequest', payload)
        logger.debug(f"Broker leased {lease.ip} to {client_key}")
        return lease

    def request_abstract(self, identifier):
        """Request a lease for an abstract (non-DHCP) device"""
        return self._put('/DHCPRequest', {'Identifier': identifier})

    def close(self):
        self.session.close()
