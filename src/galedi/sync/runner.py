"""
Sequential per-partner driver shared by the ingestion and export passes.

Each partner is isolated: an error is logged, recorded in the summary and the
loop moves on to the next partner. Only cancellation stops the loop.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from galedi.config.settings import PartnerConfig
from galedi.exceptions import GalediError, RemoteFileNotFoundError, StoreConnectionError, SyncCancelledError
from galedi.sync.locks import KeyedLocks
from galedi.utils.cancellation import CancelToken
from galedi.utils.logging import get_logger

logger = get_logger("galedi.sync.runner")

PartnerStep = Callable[[PartnerConfig], dict[str, Any]]


def run_for_partners(
    purpose: str,
    partners: Iterable[PartnerConfig],
    step: PartnerStep,
    *,
    locks: KeyedLocks | None = None,
    cancel: CancelToken | None = None,
) -> dict[str, Any]:
    """
    Run ``step`` for every enabled partner in order.

    Returns a summary dict for logs and the status endpoint.
    """
    locks = locks or KeyedLocks()
    started = time.monotonic()
    results: dict[str, dict[str, Any]] = {}

    for partner in partners:
        pid = partner.partner_id
        if not partner.enabled:
            continue
        if cancel is not None and cancel.cancelled:
            logger.warning(f"{purpose}: cancellation requested, not starting {pid}")
            results[pid] = {"partner_id": pid, "status": "cancelled"}
            continue

        with locks.single_flight((pid, purpose)) as acquired:
            if not acquired:
                logger.warning(f"{purpose} for {pid} is still running from a previous trigger, skipping")
                results[pid] = {"partner_id": pid, "status": "skipped", "reason": "already running"}
                continue
            results[pid] = _run_step(purpose, partner, step)

    summary = {
        "purpose": purpose,
        "finished_at": datetime.now(UTC).isoformat(),
        "duration_seconds": round(time.monotonic() - started, 3),
        "partners": results,
    }
    failed = [pid for pid, r in results.items() if r.get("status") == "failed"]
    if failed:
        logger.warning(f"{purpose} finished with failures for: {', '.join(failed)}")
    else:
        logger.debug(f"{purpose} finished for {len(results)} partner(s)")
    return summary


def _run_step(purpose: str, partner: PartnerConfig, step: PartnerStep) -> dict[str, Any]:
    pid = partner.partner_id
    try:
        result = step(partner)
        result.setdefault("status", "ok")
        return result
    except SyncCancelledError as e:
        logger.warning(f"{purpose} for {pid} cancelled: {e}")
        return {"partner_id": pid, "status": "cancelled", "error": str(e)}
    except RemoteFileNotFoundError as e:
        logger.warning(f"{purpose} for {pid}: {e}")
        return {"partner_id": pid, "status": "failed", "error": str(e), "error_type": "not_found"}
    except StoreConnectionError as e:
        logger.error(f"{purpose} for {pid} abandoned, store unavailable: {e}")
        return {"partner_id": pid, "status": "failed", "error": str(e), "error_type": "store"}
    except GalediError as e:
        logger.error(f"{purpose} for {pid} failed: {e}")
        return {"partner_id": pid, "status": "failed", "error": str(e), "error_type": type(e).__name__}
    except Exception as e:
        logger.exception(f"Unexpected error in {purpose} for {pid}: {e}")
        return {"partner_id": pid, "status": "failed", "error": str(e), "error_type": type(e).__name__}
