from datetime import datetime, timedelta, timezone

import pytest

from tinysubnets.common.config import build_config
from tinysubnets.utils.allocator import LeaseEngine


class FakeClock:
    """Controllable replacement for utc_now"""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lease_file(tmp_path):
    return str(tmp_path / 'leases.json')


@pytest.fixture
def make_config(lease_file):
    def _make(**overrides):
        settings = {
            'range_start': '10.0.0.0',
            'range_end': '10.0.0.16',
            'lease_time': '1h',
            'lease_file': lease_file,
        }
        settings.update(overrides)
        return build_config(settings)
    return _make


@pytest.fixture
def make_engine(make_config, clock):
    def _make(**overrides):
        return LeaseEngine(make_config(**overrides), clock=clock).load()
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
