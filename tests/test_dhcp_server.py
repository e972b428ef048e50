from datetime import timedelta

import pytest
from scapy.layers.dhcp import BOOTP, DHCP
from scapy.layers.inet import IP, UDP
from scapy.layers.l2 import Ether

from tinysubnets.services import dhcp_server
from tinysubnets.services.broker_client import LeaseResponse, LeaseUnavailable
from tinysubnets.services.dhcp_server import DHCPResponder, build_dhcp_options, get_option

CLIENT_MAC = 'aa:bb:cc:dd:ee:01'


class StubBrokerClient:
    def __init__(self, lease=None):
        self.lease = lease
        self.calls = []

    def request_lease(self, client_key, interface_name='', host_name='', subnet_mask=''):
        self.calls.append((client_key, interface_name, host_name, subnet_mask))
        if self.lease is None:
            raise LeaseUnavailable('broker down')
        return self.lease


def make_lease(dns_ip=None):
    return LeaseResponse(ip='10.0.0.6', router_ip='10.0.0.5', dns_ip=dns_ip, lease_time=timedelta(hours=1))


def make_packet(message_type, params=None, hostname=None):
    options = [('message-type', message_type)]
    if params is not None:
        options.append(('param_req_list', params))
    if hostname is not None:
        options.append(('hostname', hostname))
    options.append('end')
    return (
        Ether(src=CLIENT_MAC, dst='ff:ff:ff:ff:ff:ff') /
        IP(src='0.0.0.0', dst='255.255.255.255') /
        UDP(sport=68, dport=67) /
        BOOTP(op=1, xid=0x1234, chaddr=bytes.fromhex('aabbccddee01')) /
        DHCP(options=options)
    )


@pytest.fixture
def sent(monkeypatch):
    packets = []
    monkeypatch.setattr(dhcp_server, 'sendp', lambda packet, **kwargs: packets.append(packet))
    return packets


def make_responder(lease):
    responder = DHCPResponder(StubBrokerClient(lease), 'lan1')
    responder._hwaddr = '02:00:00:00:00:01'
    return responder


def test_discover_gets_offer(sent):
    responder = make_responder(make_lease())
    reply = responder.handle_packet(make_packet(1, hostname=b'laptop'))

    assert sent == [reply]
    assert responder.broker_client.calls == [(CLIENT_MAC, 'lan1', 'laptop', '255.255.255.252')]
    assert reply[BOOTP].yiaddr == '10.0.0.6'
    assert reply[BOOTP].xid == 0x1234
    assert get_option(reply, 'message-type') == 2
    assert get_option(reply, 'router') == '10.0.0.5'
    assert get_option(reply, 'subnet_mask') == '255.255.255.252'
    assert get_option(reply, 'lease_time') == 3600
    assert get_option(reply, 'server_id') == '10.0.0.5'
    assert get_option(reply, 'name_server') is None


def test_request_gets_ack(sent):
    reply = make_responder(make_lease()).handle_packet(make_packet(3))
    assert get_option(reply, 'message-type') == 5


def test_no_lease_means_no_reply(sent):
    responder = make_responder(None)
    assert responder.handle_packet(make_packet(1)) is None
    assert sent == []


def test_other_message_types_are_ignored(sent):
    responder = make_responder(make_lease())
    assert responder.handle_packet(make_packet(7)) is None
    assert responder.broker_client.calls == []


def test_dns_override_only_when_requested():
    lease = make_lease(dns_ip='10.0.0.53')

    with_dns = dict(o for o in build_dhcp_options(2, lease, {1, 3, 6}) if isinstance(o, tuple))
    assert with_dns['name_server'] == '10.0.0.53'
    assert with_dns['server_id'] == '10.0.0.53'

    without_dns = dict(o for o in build_dhcp_options(2, lease, {1, 3}) if isinstance(o, tuple))
    assert 'name_server' not in without_dns
    assert without_dns['server_id'] == '10.0.0.53'


def test_requested_name_server_in_offer(sent):
    reply = make_responder(make_lease(dns_ip='10.0.0.53')).handle_packet(make_packet(1, params=[1, 3, 6]))
    assert get_option(reply, 'name_server') == '10.0.0.53'
    assert reply[IP].src == '10.0.0.53'
