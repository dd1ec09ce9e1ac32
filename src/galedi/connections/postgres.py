"""
Postgres record store via ibis (psycopg v3).

The agent issues a handful of statements per cycle, so a single lazily opened
connection is kept instead of a pool.
"""

import ibis

from galedi.connections.base import BaseConnection


class PostgresConnection(BaseConnection):
    @property
    def target(self) -> str:
        return f"{self.config.host}:{self.config.port}/{self.config.database}"

    def _open(self) -> ibis.BaseBackend:
        return ibis.postgres.connect(
            host=self.config.host,
            port=self.config.port,
            user=self.config.user,
            password=self.config.password,
            database=self.config.database,
        )
