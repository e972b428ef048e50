"""
/30 lease allocator

The engine owns the lease store and the address index and serializes every
request through a single lock, so the "is this block free -> mark it taken"
sequence can never interleave with another request.
"""

import logging
import threading
from datetime import datetime, timezone

from ..common.addresses import BLOCK_SIZE, HOST_OFFSET, int_to_ip, ip_to_int
from ..common.config import ConfigError
from .address_pool import AddressPool
from .lease_store import LeaseRecord, LeaseStore

logger = logging.getLogger(__name__)


def utc_now():
    return datetime.now(timezone.utc)


def _round_to_second(moment):
    return datetime.fromtimestamp(round(moment.timestamp()), tz=timezone.utc)


class LeaseEngine:
    """Hands out and renews /30 leases for one address range"""

    def __init__(self, config, store=None, clock=utc_now):
        self.config = config
        self.lease_time = config.lease_time
        self.range_start = config.start_int
        self.range_end = config.end_int
        self.store = store or LeaseStore(config.lease_file)
        self.clock = clock
        self.pool = AddressPool()
        self._lock = threading.Lock()

    def load(self):
        """Load persisted leases and rebuild the address index"""
        with self._lock:
            records = self.store.load_all()
            try:
                self.pool = AddressPool.from_records(records)
            except ValueError as e:
                raise ConfigError(f"lease file {self.store.path} is inconsistent: {e}") from e

            for client_key, record in records.items():
                if not self._in_range(ip_to_int(record.ip)):
                    logger.warning(f"Lease {client_key} -> {record.ip} is outside the configured range "
                                   f"or not on a /30 boundary, keeping its block reserved")

            logger.info(f"Loaded {len(records)} DHCPv4 leases from {self.store.path}")
        return self

    def _in_range(self, host):
        block = host - HOST_OFFSET
        return (self.range_start <= block and block + 3 < self.range_end
                and (block - self.range_start) % BLOCK_SIZE == 0)

    def request_lease(self, client_key, block_size=None):
        """Return the lease for client_key, renewing or allocating as needed.

        Returns None when the block size is unsupported, the pool is exhausted
        or the lease could not be persisted. Nothing is changed in that case.
        """
        with self._lock:
            record = self.store.get(client_key)
            if record is not None:
                return self._renew(client_key, record)

            logger.info(f"Client address {client_key} is new, leasing new IPv4 address")
            if block_size and block_size != BLOCK_SIZE:
                logger.error(f"Only /30 blocks of {BLOCK_SIZE} addresses are supported, "
                             f"{client_key} asked for {block_size}")
                return None
            return self._allocate(client_key)

    def _renew(self, client_key, record):
        # Extend the lease at least past the one we are about to hand out
        expires = _round_to_second(self.clock() + self.lease_time)
        if record.expires < expires:
            renewed = LeaseRecord(client_key=client_key, ip=record.ip, expires=expires)
            if not self.store.put(client_key, renewed):
                logger.error(f"Could not persist lease renewal for {client_key}")
                return None
            record = renewed
        return record

    def _allocate(self, client_key):
        host = self._find_free_host()
        if host is None:
            logger.error(f"Could not allocate IP for {client_key}: ran out of /30 blocks")
            return None

        record = LeaseRecord(
            client_key=client_key,
            ip=int_to_ip(host),
            expires=_round_to_second(self.clock() + self.lease_time),
        )
        if not self.store.put(client_key, record):
            logger.error(f"Saving lease for {client_key} failed")
            return None

        self.pool.mark_taken(host)
        logger.info(f"Leased {record.ip} (router {record.router_ip}) to {client_key}")
        return record

    def _block_is_free(self, block):
        # A lease on host h owns h-2..h+1, so any host in block-1..block+5
        # overlaps block..block+3. Only matters for leases off the current grid.
        return not any(self.pool.is_taken(host)
                       for host in range(block - 1, block + BLOCK_SIZE + 2))

    def _find_free_host(self):
        """First free host address in ascending order, or None"""
        block = self.range_start
        while block + 3 < self.range_end:
            if self._block_is_free(block):
                return block + HOST_OFFSET
            block += BLOCK_SIZE
        return None

    def get_lease(self, client_key):
        with self._lock:
            return self.store.get(client_key)

    def leases(self):
        """Snapshot of all leases"""
        with self._lock:
            return self.store.all()

    def delete_lease(self, client_key):
        """Drop a lease and free its block. Meant for operator use only."""
        with self._lock:
            record = self.store.get(client_key)
            if record is None:
                return False
            if not self.store.delete(client_key):
                return False
            self.pool.release(ip_to_int(record.ip))
            logger.info(f"Deleted lease {client_key} -> {record.ip}")
            return True

    def stats(self):
        with self._lock:
            return {
                'lease_count': len(self.store),
                'allocated_ips': len(self.pool),
                'block_count': self.config.block_count,
            }
