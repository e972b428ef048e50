import os
import shutil
import tempfile
import threading
from datetime import timedelta

import pytest
from flask import Flask, jsonify

from tinysubnets.services.broker import BrokerServer, create_app
from tinysubnets.services.broker_client import BrokerClient, LeaseResponse, LeaseUnavailable


@pytest.fixture
def socket_path():
    # Unix socket paths are limited to ~100 bytes, keep it short
    directory = tempfile.mkdtemp(prefix='ts-')
    yield os.path.join(directory, 'broker.sock')
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
def serve(socket_path):
    servers = []

    def _serve(app):
        server = BrokerServer(app, socket_path)
        server.start()
        servers.append(server)
        return BrokerClient(socket_path, timeout=10)

    yield _serve
    for server in servers:
        server.stop()


def test_request_lease_over_unix_socket(serve, engine):
    client = serve(create_app(engine, dns_override='10.0.0.53'))

    lease = client.request_lease('aa:bb:cc:dd:ee:01', 'lan1', 'laptop')
    assert lease == LeaseResponse(ip='10.0.0.2', router_ip='10.0.0.1', dns_ip='10.0.0.53',
                                  lease_time=timedelta(hours=1))
    assert engine.get_lease('aa:bb:cc:dd:ee:01').ip == '10.0.0.2'


def test_request_lease_with_identifier_key(serve, engine):
    client = serve(create_app(engine))
    lease = client.request_lease('vpn-peer-7')
    assert lease.ip == '10.0.0.2'
    assert lease.dns_ip is None
    assert engine.get_lease('vpn-peer-7') is not None


def test_request_lease_with_subnet_mask(serve, engine):
    client = serve(create_app(engine))
    assert client.request_lease('aa:bb:cc:dd:ee:01', 'lan1', 'laptop', '255.255.255.252').ip == '10.0.0.2'

    with pytest.raises(LeaseUnavailable, match='Failed to get IP'):
        client.request_lease('aa:bb:cc:dd:ee:02', 'lan1', 'laptop', '255.255.255.0')
    assert engine.get_lease('aa:bb:cc:dd:ee:02') is None


def test_request_abstract(serve, engine):
    client = serve(create_app(engine))
    assert client.request_abstract('dev-1').ip == '10.0.0.2'
    assert client.request_abstract('dev-2').ip == '10.0.0.6'


def test_refusal_raises(serve, engine):
    client = serve(create_app(engine))
    with pytest.raises(LeaseUnavailable, match='400'):
        client.request_abstract('two words')


def test_exhaustion_raises(serve, make_engine):
    client = serve(create_app(make_engine(range_end='10.0.0.4')))
    client.request_abstract('first')
    with pytest.raises(LeaseUnavailable, match='Failed to get IP'):
        client.request_abstract('second')


def test_unreachable_broker_raises(socket_path):
    client = BrokerClient(socket_path)
    with pytest.raises(LeaseUnavailable, match='unreachable'):
        client.request_lease('aa:bb:cc:dd:ee:01', 'lan1', 'laptop')


@pytest.mark.parametrize('body', [
    {'IP': 'garbage', 'RouterIP': '10.0.0.1', 'DNSIP': '', 'LeaseTime': '1h0m0s'},
    {'IP': '10.0.0.2', 'RouterIP': '10.0.0.1', 'DNSIP': '', 'LeaseTime': 'soon'},
    {'IP': '10.0.0.2', 'DNSIP': ''},
    ['10.0.0.2'],
])
def test_undecodable_response_raises(serve, body):
    app = Flask(__name__)

    @app.route('/dhcpRequest', methods=['PUT'])
    def broken():
        return jsonify(body)

    client = serve(app)
    with pytest.raises(LeaseUnavailable, match='decode'):
        client.request_lease('aa:bb:cc:dd:ee:01')


def test_concurrent_clients_get_distinct_blocks(serve, make_engine, socket_path):
    engine = make_engine(range_end='10.0.0.80')
    serve(create_app(engine))
    results = {}

    def worker(i):
        client = BrokerClient(socket_path, timeout=30)
        try:
            results[i] = client.request_abstract(f'dev-{i}').ip
        finally:
            client.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 20
    assert len(set(results.values())) == 20


def test_server_removes_socket_on_stop(socket_path, engine):
    server = BrokerServer(create_app(engine), socket_path)
    server.start()
    assert os.path.exists(socket_path)
    server.stop()
    assert not os.path.exists(socket_path)
