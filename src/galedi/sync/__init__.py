"""
Sync engine: ingestion of partner data files and the request/feedback export handshake.
"""

from galedi.sync.export import export_partner, run_export, write_export_file
from galedi.sync.ingest import ingest_partner, run_ingestion
from galedi.sync.locks import KeyedLocks
from galedi.sync.types import HandshakeAction, decide_action

__all__ = [
    "HandshakeAction",
    "KeyedLocks",
    "decide_action",
    "export_partner",
    "ingest_partner",
    "run_export",
    "run_ingestion",
    "write_export_file",
]
