"""
Connection factories.

Maps the store config onto an ibis-backed connection and each partner
endpoint onto a remote channel implementation.
"""

from galedi.config.settings import EndpointConfig, StoreConfig
from galedi.connections.base import BaseConnection
from galedi.connections.duckdb import DuckDBConnection
from galedi.connections.ftp import FTPChannel
from galedi.connections.postgres import PostgresConnection
from galedi.connections.remote import RemoteChannel
from galedi.connections.sftp import SFTPChannel
from galedi.exceptions import ConfigurationError


def create_store_connection(config: StoreConfig, name: str = "store") -> BaseConnection:
    """Build the store connection for the configured backend type."""
    if config.type == "duckdb":
        return DuckDBConnection(name, config)
    if config.type == "postgres":
        return PostgresConnection(name, config)
    raise ConfigurationError(f"Unknown store type '{config.type}'")


def create_remote_channel(partner_id: str, endpoint: EndpointConfig) -> RemoteChannel:
    """Build the remote channel for an endpoint, chosen by URL scheme."""
    if endpoint.scheme == "sftp":
        return SFTPChannel(partner_id, endpoint)
    if endpoint.scheme == "ftp":
        return FTPChannel(partner_id, endpoint)
    raise ConfigurationError(f"Unsupported remote scheme '{endpoint.scheme}' for partner {partner_id}")
