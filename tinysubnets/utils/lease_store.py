"""
Lease record store

Keeps the client key -> lease mapping in memory and mirrors it to a JSON
lease file. The file is rewritten through a temporary file and os.replace on
every change, so a crash leaves either the old or the new table on disk and
never a half-written one.

Lease file schema:
{
  "leases": {
    "<client key>": {"ip": "10.0.0.2", "expires": "2024-01-01T12:00:00+00:00"}
  }
}

The router address is not stored; it is always derived from the host address.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone

from ..common.addresses import parse_ipv4, router_for
from ..common.config import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseRecord:
    client_key: str
    ip: str
    expires: datetime

    @property
    def router_ip(self):
        return router_for(self.ip)

    def is_expired(self, now=None):
        now = now or datetime.now(timezone.utc)
        return self.expires <= now

    def to_dict(self):
        return {
            'ip': self.ip,
            'expires': self.expires.isoformat(),
        }

    @classmethod
    def from_dict(cls, client_key, data):
        ip = str(parse_ipv4(data['ip']))
        expires = datetime.fromisoformat(data['expires'])
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return cls(client_key=client_key, ip=ip, expires=expires)


class LeaseStore:
    """In-memory lease table backed by a JSON file"""

    def __init__(self, path):
        self.path = path
        self._records = {}

    def __len__(self):
        return len(self._records)

    def load_all(self):
        """Load every record from the lease file, replacing the in-memory table"""
        if not os.path.exists(self.path):
            logger.info(f"Lease file {self.path} does not exist yet, starting empty")
            self._records = {}
            return {}

        try:
            with open(self.path) as f:
                saved_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"could not load records from file {self.path}: {e}") from e

        if not isinstance(saved_data, dict) or not isinstance(saved_data.get('leases', {}), dict):
            raise ConfigError(f"unexpected lease file layout in {self.path}")

        records = {}
        for client_key, data in saved_data.get('leases', {}).items():
            try:
                records[client_key] = LeaseRecord.from_dict(client_key, data)
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"invalid lease for {client_key} in {self.path}: {e}") from e

        self._records = records
        logger.info(f"Loaded {len(records)} leases from {self.path}")
        return dict(records)

    def get(self, client_key):
        return self._records.get(client_key)

    def all(self):
        """Snapshot of the current table"""
        return dict(self._records)

    def put(self, client_key, record):
        """Persist a record, then make it visible in memory.

        Returns False if the lease file could not be written; the in-memory
        table is left unchanged in that case.
        """
        updated = dict(self._records)
        updated[client_key] = record
        if not self._write(updated):
            return False
        self._records = updated
        return True

    def delete(self, client_key):
        """Remove a record from disk and memory, returning False if absent or unwritable"""
        if client_key not in self._records:
            return False
        updated = dict(self._records)
        del updated[client_key]
        if not self._write(updated):
            return False
        self._records = updated
        return True

    def _write(self, records):
        out = {'leases': {key: record.to_dict() for key, record in sorted(records.items())}}
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix='.leases-', suffix='.tmp', dir=directory)
            with os.fdopen(fd, 'w') as f:
                json.dump(out, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
            self._sync_directory(directory)
            return True
        except OSError as e:
            logger.error(f"Failed to write lease file {self.path}: {e}")
            return False
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    @staticmethod
    def _sync_directory(directory):
        # Make the rename itself durable
        try:
            dir_fd = os.open(directory, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError as e:
            logger.debug(f"Directory fsync not supported for {directory}: {e}")
        finally:
            os.close(dir_fd)
