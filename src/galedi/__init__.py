"""
Galedi - periodic sync agent moving logistics (LE) records between partner
FTP/SFTP drop sites and a relational store.
"""

__version__ = "0.3.0"

from galedi.config import AgentConfig, PartnerConfig, load_config
from galedi.core import RecordStore
from galedi.exceptions import (
    ConfigurationError,
    GalediError,
    InitializationError,
    RemoteChannelError,
    RemoteFileNotFoundError,
    StoreConnectionError,
    StoreError,
    SyncCancelledError,
)
from galedi.sync import run_export, run_ingestion

__all__ = [
    "__version__",
    "AgentConfig",
    "PartnerConfig",
    "RecordStore",
    "load_config",
    "run_export",
    "run_ingestion",
    "ConfigurationError",
    "GalediError",
    "InitializationError",
    "RemoteChannelError",
    "RemoteFileNotFoundError",
    "StoreConnectionError",
    "StoreError",
    "SyncCancelledError",
]
