"""
Index of host addresses currently handed out

Derived from the lease store at startup and updated after every successful
store write. It is never persisted on its own.
"""

from ..common.addresses import ip_to_int


class AddressPool:

    def __init__(self):
        self._taken = set()

    @classmethod
    def from_records(cls, records):
        """Rebuild the index from a {client_key: LeaseRecord} mapping.

        Raises ValueError if two records claim the same host address.
        """
        pool = cls()
        owners = {}
        for client_key, record in records.items():
            offset = ip_to_int(record.ip)
            if offset in owners:
                raise ValueError(f"{record.ip} is leased to both {owners[offset]} and {client_key}")
            owners[offset] = client_key
            pool.mark_taken(offset)
        return pool

    def __len__(self):
        return len(self._taken)

    def is_taken(self, offset):
        return offset in self._taken

    def mark_taken(self, offset):
        self._taken.add(offset)

    def release(self, offset):
        self._taken.discard(offset)
