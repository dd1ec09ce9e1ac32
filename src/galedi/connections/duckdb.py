"""
DuckDB record store for single-host installs, development and tests.
"""

import re
from pathlib import Path

import ibis

from galedi.connections.base import BaseConnection
from galedi.exceptions import StoreConnectionError

_LOCK_HOLDER = re.compile(r"PID\s+(\d+)")


class DuckDBConnection(BaseConnection):
    """File-backed (or ``:memory:``) DuckDB store."""

    @property
    def target(self) -> str:
        return self.config.path or ":memory:"

    def _open(self) -> ibis.BaseBackend:
        if self.target == ":memory:":
            return ibis.duckdb.connect()

        Path(self.target).parent.mkdir(parents=True, exist_ok=True)
        try:
            return ibis.duckdb.connect(self.target)
        except Exception as e:
            message = str(e)
            if "lock" not in message.lower():
                raise
            holder = _LOCK_HOLDER.search(message)
            owner = f" by PID {holder.group(1)}" if holder else ""
            raise StoreConnectionError(
                f"DuckDB store {self.target} is held{owner}; run one agent per store file",
                details={"target": self.target},
            ) from e
