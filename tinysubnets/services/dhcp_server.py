#!/usr/bin/env python3
"""
Scapy-based DHCP responder backed by the lease broker

Answers DISCOVER and REQUEST packets with /30 leases obtained from the
broker. It holds no lease state of its own: if the broker cannot grant a
lease, no reply is sent at all.
"""

import logging
import os
import sys

from scapy.all import get_if_hwaddr, sendp, sniff
from scapy.layers.dhcp import BOOTP, DHCP
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import Ether

from ..common.addresses import SUBNET_MASK
from ..common.config import ConfigError, load_config
from .broker_client import BrokerClient, LeaseUnavailable

logger = logging.getLogger(__name__)

DHCP_DISCOVER = 1
DHCP_OFFER = 2
DHCP_REQUEST = 3
DHCP_ACK = 5

# Option 6 in the parameter request list
OPTION_NAME_SERVER = 6


def get_option(packet, name):
    """Value of a DHCP option, or None"""
    if not packet.haslayer(DHCP):
        return None
    for option in packet[DHCP].options:
        if isinstance(option, tuple) and option[0] == name:
            return option[1] if len(option) == 2 else list(option[1:])
    return None


def requested_options(packet):
    """Set of option codes from the parameter request list"""
    params = get_option(packet, 'param_req_list')
    if params is None:
        return set()
    if isinstance(params, (bytes, bytearray)):
        return set(params)
    if isinstance(params, int):
        return {params}
    return set(params)


def build_dhcp_options(message_type, lease, requested):
    """DHCP options for OFFER/ACK built from a broker lease"""
    server_id = lease.dns_ip or lease.router_ip
    options = [
        ('message-type', message_type),
        ('server_id', server_id),
        ('lease_time', int(lease.lease_time.total_seconds())),
        ('subnet_mask', SUBNET_MASK),
        ('router', lease.router_ip),
    ]
    if lease.dns_ip and OPTION_NAME_SERVER in requested:
        options.append(('name_server', lease.dns_ip))
    options.append('end')
    return options


class DHCPResponder:

    def __init__(self, broker_client, interface):
        self.broker_client = broker_client
        self.interface = interface
        self._hwaddr = None

    @property
    def hwaddr(self):
        if self._hwaddr is None:
            self._hwaddr = get_if_hwaddr(self.interface)
        return self._hwaddr

    def lease_for(self, packet):
        """Ask the broker for the client's lease, returning None when there is none"""
        mac = packet[Ether].src
        hostname = get_option(packet, 'hostname')
        if isinstance(hostname, bytes):
            hostname = hostname.decode(errors='replace')

        try:
            return self.broker_client.request_lease(mac, self.interface, hostname or '', SUBNET_MASK)
        except LeaseUnavailable as e:
            logger.error(f"No lease for {mac}: {e}")
            return None

    def build_reply(self, request_packet, message_type, lease):
        """Create a DHCP OFFER or ACK packet for a lease"""
        options = build_dhcp_options(message_type, lease, requested_options(request_packet))
        server_id = lease.dns_ip or lease.router_ip
        return (
            Ether(dst=request_packet[Ether].src, src=self.hwaddr) /
            IP(src=server_id, dst='255.255.255.255') /
            UDP(sport=67, dport=68) /
            BOOTP(
                op=2,  # Boot reply
                htype=1,
                hlen=6,
                xid=request_packet[BOOTP].xid,
                yiaddr=lease.ip,
                siaddr=server_id,
                chaddr=request_packet[BOOTP].chaddr
            ) /
            DHCP(options=options)
        )

    def handle_packet(self, packet):
        """Handle incoming DHCP packets, returning the reply sent (if any)"""
        if not packet.haslayer(DHCP) or not packet.haslayer(BOOTP):
            return None

        message_type = get_option(packet, 'message-type')
        if message_type == DHCP_DISCOVER:
            reply_type = DHCP_OFFER
        elif message_type == DHCP_REQUEST:
            reply_type = DHCP_ACK
        else:
            return None

        mac = packet[Ether].src
        logger.info(f"DHCP {'DISCOVER' if reply_type == DHCP_OFFER else 'REQUEST'} from {mac}")

        lease = self.lease_for(packet)
        if lease is None:
            return None

        reply = self.build_reply(packet, reply_type, lease)
        sendp(reply, iface=self.interface, verbose=0)
        logger.info(f"Sent DHCP {'OFFER' if reply_type == DHCP_OFFER else 'ACK'} {lease.ip} to {mac}")
        return reply

    def start(self):
        logger.info(f"DHCP responder listening on {self.interface}")
        sniff(
            iface=self.interface,
            filter="udp and port 67",
            prn=self.handle_packet,
            store=0
        )


def main(config_path=None):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    if os.geteuid() != 0:
        print("This script must be run as root")
        sys.exit(1)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if not config.interface:
        logger.error("No interface configured for the DHCP responder")
        sys.exit(1)

    responder = DHCPResponder(BrokerClient(config.socket_path), config.interface)
    try:
        responder.start()
    except KeyboardInterrupt:
        logger.info("DHCP responder stopped")


if __name__ == '__main__':
    main()
