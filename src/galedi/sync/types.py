"""
Type definitions shared by the ingestion and export pipelines.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from pathlib import Path

from galedi.config.settings import EndpointConfig, PartnerConfig, partner_slug
from galedi.connections.remote import RemoteChannel

# (partner_id, endpoint) -> channel; swapped for fakes in tests
ChannelFactory = Callable[[str, EndpointConfig], RemoteChannel]

PURPOSE_INGEST = "ingest"
PURPOSE_EXPORT = "export"


class HandshakeAction(str, Enum):
    """What to do for a partner given the two sentinel files."""

    EXPORT = "export"
    REMOVE_FEEDBACK = "remove_feedback"
    FEEDBACK_PENDING = "feedback_pending"
    IDLE = "idle"


def decide_action(request_exists: bool, feedback_exists: bool) -> HandshakeAction:
    """
    Map the presence of the request and feedback files onto an action.

    ======== ========= ==================
    request  feedback  action
    ======== ========= ==================
    yes      no        EXPORT
    no       yes       REMOVE_FEEDBACK
    yes      yes       FEEDBACK_PENDING
    no       no        IDLE
    ======== ========= ==================

    Recomputed from remote observation on every cycle, nothing is persisted.
    """
    if request_exists and not feedback_exists:
        return HandshakeAction.EXPORT
    if feedback_exists and not request_exists:
        return HandshakeAction.REMOVE_FEEDBACK
    if request_exists and feedback_exists:
        return HandshakeAction.FEEDBACK_PENDING
    return HandshakeAction.IDLE


def staging_path(work_dir: Path, purpose: str, partner: PartnerConfig, file_name: str) -> Path:
    """
    Local temporary path for a partner file.

    Deterministic per (partner, purpose), which is why runs for the same key
    must not overlap.
    """
    return Path(work_dir) / purpose / partner_slug(partner.partner_id) / file_name
