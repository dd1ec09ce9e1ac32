"""
Ingestion pipeline: download a partner's raw data file and persist new records.

A download failure abandons the partner for this cycle. A bad line, or a store
error on a single insert, only skips that line. Losing the store connection
abandons the rest of the file. The staging file is removed in every case.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from galedi.config.settings import PartnerConfig
from galedi.connections.manager import create_remote_channel
from galedi.connections.remote import RemoteChannel
from galedi.core.records import RecordValidationError, split_fields
from galedi.core.store import InsertOutcome, RecordStore
from galedi.exceptions import StoreConnectionError, StoreError
from galedi.sync.locks import KeyedLocks
from galedi.sync.runner import run_for_partners
from galedi.sync.types import PURPOSE_INGEST, ChannelFactory, staging_path
from galedi.utils.cancellation import CancelToken, check_cancelled
from galedi.utils.logging import get_logger

logger = get_logger("galedi.sync.ingest")


def ingest_partner(
    partner: PartnerConfig,
    *,
    store: RecordStore,
    channel: RemoteChannel,
    work_dir: Path,
    cancel: CancelToken | None = None,
) -> dict[str, Any]:
    """
    Run one ingestion pass for a single partner.

    Raises:
        RemoteChannelError: If the source file cannot be downloaded
        StoreConnectionError: If the store goes away mid-file
        SyncCancelledError: If cancellation is observed
    """
    pid = partner.partner_id
    summary: dict[str, Any] = {
        "partner_id": pid,
        "source_file": partner.source_file,
        "lines": 0,
        "inserted": 0,
        "duplicates": 0,
        "rejected": 0,
        "failed": 0,
    }
    local_path = staging_path(work_dir, PURPOSE_INGEST, partner, partner.source_file)

    try:
        check_cancelled(cancel, f"download of {partner.source_file}")
        channel.download(partner.source_file, local_path, cancel=cancel)

        with open(local_path, encoding="utf-8-sig", errors="replace") as fh:
            for line_no, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                summary["lines"] += 1
                _ingest_line(pid, line_no, line, store, summary, cancel)
    finally:
        local_path.unlink(missing_ok=True)

    logger.info(
        f"Ingested {partner.source_file} for {pid}: {summary['inserted']} new, "
        f"{summary['duplicates']} duplicate, {summary['rejected']} rejected, {summary['failed']} failed"
    )
    return summary


def _ingest_line(
    pid: str,
    line_no: int,
    line: str,
    store: RecordStore,
    summary: dict[str, Any],
    cancel: CancelToken | None,
) -> None:
    raw = line.rstrip("\r\n")
    try:
        fields = split_fields(raw)
    except RecordValidationError as e:
        summary["rejected"] += 1
        logger.warning(f"{pid} line {line_no} rejected ({e}): {raw}")
        return

    check_cancelled(cancel, f"insert of line {line_no}")
    try:
        result = store.insert(pid, fields)
    except StoreConnectionError:
        raise
    except StoreError as e:
        summary["failed"] += 1
        logger.error(f"{pid} line {line_no} not stored: {e}")
        return

    if result.outcome is InsertOutcome.INSERTED:
        summary["inserted"] += 1
        logger.debug(f"{pid} record inserted (id={result.record_id}): {raw}")
    elif result.outcome is InsertOutcome.DUPLICATE_REJECTED:
        summary["duplicates"] += 1
        logger.debug(f"{pid} duplicate entry, not inserted: {raw}")
    else:
        summary["rejected"] += 1
        logger.warning(f"{pid} line {line_no} rejected ({result.reason}): {raw}")


def run_ingestion(
    partners: Iterable[PartnerConfig],
    *,
    store: RecordStore,
    work_dir: Path,
    locks: KeyedLocks | None = None,
    cancel: CancelToken | None = None,
    channel_factory: ChannelFactory = create_remote_channel,
) -> dict[str, Any]:
    """
    Ingest every enabled partner in order, pulling from each partner's source endpoint.
    """

    def _step(partner: PartnerConfig) -> dict[str, Any]:
        channel = channel_factory(partner.partner_id, partner.source)
        return ingest_partner(partner, store=store, channel=channel, work_dir=work_dir, cancel=cancel)

    return run_for_partners(PURPOSE_INGEST, partners, _step, locks=locks, cancel=cancel)
