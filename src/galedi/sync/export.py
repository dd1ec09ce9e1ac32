"""
Handshake and export pipeline.

For each partner the request and feedback files are looked up on the remote
site and ``decide_action`` picks what to do. Exporting writes the oldest
pending records to a local feedback file, uploads it and only then marks
exactly the uploaded records as delivered.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from galedi.config.settings import PartnerConfig
from galedi.connections.manager import create_remote_channel
from galedi.connections.remote import RemoteChannel
from galedi.core.records import PendingRecord, format_record_line
from galedi.core.store import RecordStore
from galedi.sync.locks import KeyedLocks
from galedi.sync.runner import run_for_partners
from galedi.sync.types import PURPOSE_EXPORT, ChannelFactory, HandshakeAction, decide_action, staging_path
from galedi.utils.cancellation import CancelToken, check_cancelled
from galedi.utils.logging import get_logger

logger = get_logger("galedi.sync.export")

# Partners read the feedback file on Windows hosts
LINE_TERMINATOR = "\r\n"


def write_export_file(path: Path, records: Sequence[PendingRecord]) -> int:
    """
    Write records in wire format, one per line. Zero records give an empty file.

    Returns:
        Number of lines written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as fh:
        for record in records:
            fh.write(format_record_line(record) + LINE_TERMINATOR)
    return len(records)


def export_partner(
    partner: PartnerConfig,
    *,
    store: RecordStore,
    channel: RemoteChannel,
    work_dir: Path,
    cancel: CancelToken | None = None,
) -> dict[str, Any]:
    """
    Run one handshake pass for a single partner.

    Raises:
        RemoteChannelError: If a listing, upload or delete fails
        StoreError: If the store cannot be read or updated
        SyncCancelledError: If cancellation is observed
    """
    pid = partner.partner_id

    check_cancelled(cancel, f"lookup of {partner.request_file}")
    request_exists = channel.exists(partner.request_file, cancel=cancel)
    check_cancelled(cancel, f"lookup of {partner.feedback_file}")
    feedback_exists = channel.exists(partner.feedback_file, cancel=cancel)

    action = decide_action(request_exists, feedback_exists)
    summary: dict[str, Any] = {
        "partner_id": pid,
        "request_file_exists": request_exists,
        "feedback_file_exists": feedback_exists,
        "action": action.value,
    }

    if action is HandshakeAction.EXPORT:
        summary.update(_export_pending(partner, store=store, channel=channel, work_dir=work_dir, cancel=cancel))
    elif action is HandshakeAction.REMOVE_FEEDBACK:
        check_cancelled(cancel, f"delete of {partner.feedback_file}")
        deleted = channel.delete(partner.feedback_file, cancel=cancel)
        summary["feedback_deleted"] = deleted
        if deleted:
            logger.info(f"Feedback file {partner.feedback_file} for {pid} removed (no request pending)")
        else:
            logger.warning(f"Feedback file {partner.feedback_file} for {pid} vanished before it could be removed")
    elif action is HandshakeAction.FEEDBACK_PENDING:
        logger.warning(f"A feedback file for {pid} is already there, waiting for the partner to pick it up")
    else:
        logger.debug(f"{pid}: nothing requested, nothing pending")

    return summary


def _export_pending(
    partner: PartnerConfig,
    *,
    store: RecordStore,
    channel: RemoteChannel,
    work_dir: Path,
    cancel: CancelToken | None,
) -> dict[str, Any]:
    pid = partner.partner_id
    local_path = staging_path(work_dir, PURPOSE_EXPORT, partner, partner.feedback_file)

    try:
        check_cancelled(cancel, "read_pending")
        records = store.read_pending(pid)
        write_export_file(local_path, records)

        check_cancelled(cancel, f"upload of {partner.feedback_file}")
        receipt = channel.upload(partner.feedback_file, local_path, cancel=cancel)

        record_ids = [r.record_id for r in records]
        marked = 0
        if record_ids:
            # Confirmed upload: mark even if cancellation arrived meanwhile
            marked = store.mark_delivered(pid, record_ids)
            if marked != len(record_ids):
                logger.warning(f"{pid}: exported {len(record_ids)} records but only {marked} were still pending")
    finally:
        local_path.unlink(missing_ok=True)

    if records:
        logger.info(f"Exported {len(records)} records to {partner.feedback_file} for {pid}, {marked} marked delivered")
    else:
        logger.info(f"No pending records for {pid}, uploaded empty {partner.feedback_file}")

    return {
        "exported": len(records),
        "marked_delivered": marked,
        "uploaded_bytes": receipt.size,
        "confirmation": receipt.confirmation,
    }


def run_export(
    partners: Iterable[PartnerConfig],
    *,
    store: RecordStore,
    work_dir: Path,
    locks: KeyedLocks | None = None,
    cancel: CancelToken | None = None,
    channel_factory: ChannelFactory = create_remote_channel,
) -> dict[str, Any]:
    """
    Run the handshake for every enabled partner in order.
    """

    def _step(partner: PartnerConfig) -> dict[str, Any]:
        channel = channel_factory(partner.partner_id, partner.endpoint)
        return export_partner(partner, store=store, channel=channel, work_dir=work_dir, cancel=cancel)

    return run_for_partners(PURPOSE_EXPORT, partners, _step, locks=locks, cancel=cancel)
