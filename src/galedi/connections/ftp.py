"""
Plain FTP remote channel (``ftplib``).

One control connection per operation: connect, login, change into the
endpoint directory, do the work, then QUIT (or drop the socket on error).
"""

from __future__ import annotations

import ftplib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from galedi.connections.remote import (
    RemoteChannel,
    UploadReceipt,
    discard_partial,
    finish_download,
    is_listing_match,
    part_path_for,
)
from galedi.exceptions import RemoteChannelError, RemoteFileNotFoundError
from galedi.utils.cancellation import CancelToken, check_cancelled
from galedi.utils.logging import get_logger

logger = get_logger("galedi.connections.ftp")

TRANSFER_BLOCK_SIZE = 8192


def is_not_found_reply(exc: BaseException) -> bool:
    """550 (file unavailable) is the not-found class; some servers answer 450 for an empty LIST."""
    if isinstance(exc, ftplib.error_perm):
        return str(exc).startswith("550")
    if isinstance(exc, ftplib.error_temp):
        return str(exc).startswith("450")
    return False


class FTPChannel(RemoteChannel):
    """Remote channel over plain FTP."""

    @contextmanager
    def _session(self) -> Iterator[ftplib.FTP]:
        cfg = self.endpoint
        ftp = ftplib.FTP(timeout=cfg.timeout_s)
        try:
            ftp.connect(cfg.host, cfg.port)
            ftp.login(cfg.username, cfg.password or "")
            if cfg.remote_dir:
                ftp.cwd(cfg.remote_dir)
            yield ftp
        except BaseException:
            # Abort: skip QUIT, the control connection may be mid-transfer
            ftp.close()
            raise
        else:
            try:
                ftp.quit()
            except ftplib.all_errors as e:
                logger.debug(f"QUIT failed on {self.describe()}: {e}")
            finally:
                ftp.close()

    def _error(self, action: str, file_name: str, exc: BaseException) -> RemoteChannelError:
        return RemoteChannelError(
            f"FTP {action} of {file_name} on {self.describe()} failed: {exc}",
            partner_id=self.partner_id,
            file_name=file_name,
            cause=exc if isinstance(exc, Exception) else None,
        )

    def exists(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        lines: list[str] = []
        try:
            with self._session() as ftp:
                check_cancelled(cancel, f"listing for {file_name}")
                ftp.retrlines("LIST", lines.append)
        except ftplib.all_errors as e:
            if is_not_found_reply(e):
                logger.debug(f"File {file_name} not found on {self.describe()}: {e}")
                return False
            raise self._error("listing", file_name, e) from e

        found = any(is_listing_match(line, file_name) for line in lines)
        logger.debug(f"File {file_name} {'found' if found else 'not found'} on {self.describe()}")
        return found

    def download(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        part_path = part_path_for(local_path)

        try:
            with open(part_path, "wb") as fh, self._session() as ftp:

                def _write(block: bytes) -> None:
                    check_cancelled(cancel, f"download of {file_name}")
                    fh.write(block)

                ftp.retrbinary(f"RETR {file_name}", _write, blocksize=TRANSFER_BLOCK_SIZE)
        except ftplib.all_errors as e:
            discard_partial(part_path)
            if is_not_found_reply(e):
                raise RemoteFileNotFoundError(
                    f"{file_name} not found on {self.describe()}",
                    partner_id=self.partner_id,
                    file_name=file_name,
                    cause=e,
                ) from e
            raise self._error("download", file_name, e) from e
        except BaseException:
            discard_partial(part_path)
            raise

        logger.info(f"Downloaded {file_name} from {self.describe()}")
        return finish_download(part_path, local_path)

    def upload(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> UploadReceipt:
        local_path = Path(local_path)

        def _progress(block: bytes) -> None:
            check_cancelled(cancel, f"upload of {file_name}")

        try:
            with open(local_path, "rb") as fh, self._session() as ftp:
                reply = ftp.storbinary(f"STOR {file_name}", fh, blocksize=TRANSFER_BLOCK_SIZE, callback=_progress)
        except ftplib.all_errors as e:
            raise self._error("upload", file_name, e) from e

        # storbinary returns the final reply of the transfer, 226/250 on success
        if not reply or not reply.startswith("2"):
            raise RemoteChannelError(
                f"FTP upload of {file_name} on {self.describe()} not confirmed: {reply!r}",
                partner_id=self.partner_id,
                file_name=file_name,
            )

        size = local_path.stat().st_size
        logger.info(f"Uploaded {file_name} to {self.describe()} ({size} bytes): {reply}")
        return UploadReceipt(
            file_name=file_name,
            remote_path=self.endpoint.remote_path(file_name),
            size=size,
            confirmation=reply,
        )

    def delete(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        try:
            with self._session() as ftp:
                check_cancelled(cancel, f"delete of {file_name}")
                reply = ftp.delete(file_name)
        except ftplib.all_errors as e:
            if is_not_found_reply(e):
                logger.warning(f"File {file_name} not found on {self.describe()}, nothing to delete")
                return False
            raise self._error("delete", file_name, e) from e

        logger.info(f"Deleted {file_name} from {self.describe()}: {reply}")
        return True
