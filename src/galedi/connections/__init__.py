"""
Connections: ibis-backed record store backends and remote file channels.
"""

from galedi.connections.base import BaseConnection
from galedi.connections.duckdb import DuckDBConnection
from galedi.connections.ftp import FTPChannel
from galedi.connections.manager import create_remote_channel, create_store_connection
from galedi.connections.postgres import PostgresConnection
from galedi.connections.remote import RemoteChannel, UploadReceipt, is_listing_match, listing_entry_name
from galedi.connections.sftp import SFTPChannel, SFTPConnection

__all__ = [
    "BaseConnection",
    "DuckDBConnection",
    "FTPChannel",
    "PostgresConnection",
    "RemoteChannel",
    "SFTPChannel",
    "SFTPConnection",
    "UploadReceipt",
    "create_remote_channel",
    "create_store_connection",
    "is_listing_match",
    "listing_entry_name",
]
