"""
Remote channel abstraction over a partner's file-drop endpoint.

Every operation opens its own transport session and releases it on all exit
paths. There is no retry inside a channel; a failed cycle is simply repeated
on the next scheduled run.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from galedi.config.settings import EndpointConfig
from galedi.utils.cancellation import CancelToken


@dataclass(frozen=True)
class UploadReceipt:
    """Transport confirmation for a finished upload."""

    file_name: str
    remote_path: str
    size: int
    confirmation: str


def listing_entry_name(line: str) -> str | None:
    """
    Name of the file described by one ``ls -l`` style listing line.

    The name is the last whitespace-delimited token; directory entries
    (lines starting with ``d``) yield None.
    """
    tokens = line.split()
    if not tokens or line.startswith("d"):
        return None
    return tokens[-1]


def is_listing_match(line: str, file_name: str) -> bool:
    """True if the listing line describes a regular file called ``file_name`` (case-insensitive)."""
    name = listing_entry_name(line)
    return name is not None and name.casefold() == file_name.casefold()


class RemoteChannel(ABC):
    """File operations against one partner endpoint."""

    def __init__(self, partner_id: str, endpoint: EndpointConfig):
        self.partner_id = partner_id
        self.endpoint = endpoint

    @abstractmethod
    def exists(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        """
        Check for a regular file in the endpoint directory.

        Not-found class transport errors mean False; any other failure raises
        ``RemoteChannelError``.
        """

    @abstractmethod
    def download(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> Path:
        """
        Download ``file_name`` to ``local_path``.

        Raises:
            RemoteFileNotFoundError: If the remote file does not exist
            RemoteChannelError: On any other transport failure
        """

    @abstractmethod
    def upload(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> UploadReceipt:
        """
        Upload ``local_path`` as ``file_name``.

        Returns only once the server confirmed the transfer.
        """

    @abstractmethod
    def delete(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        """Delete ``file_name``; False if it was not there."""

    def describe(self) -> str:
        return f"{self.partner_id}@{self.endpoint.display()}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(partner='{self.partner_id}', endpoint='{self.endpoint.display()}')"


def part_path_for(local_path: Path) -> Path:
    """Staging path for an in-flight download."""
    return local_path.with_name(local_path.name + ".part")


def finish_download(part_path: Path, local_path: Path) -> Path:
    """Atomically move a completed download into place."""
    os.replace(part_path, local_path)
    return local_path


def discard_partial(part_path: Path) -> None:
    part_path.unlink(missing_ok=True)
