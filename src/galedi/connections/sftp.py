"""
SFTP remote channel.

``SFTPConnection`` owns one paramiko transport + SFTP client; ``SFTPChannel``
opens a fresh connection for every operation.
"""

from __future__ import annotations

import socket
from pathlib import Path
from typing import Any

import paramiko

from galedi.config.settings import EndpointConfig
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

logger = get_logger("galedi.connections.sftp")

# Transport failures that map onto RemoteChannelError
SFTP_ERRORS = (paramiko.SSHException, OSError, EOFError)


class SFTPConnection:
    """
    Minimal SFTP connection wrapper.

    Connects lazily and closes client and transport together.
    """

    def __init__(self, name: str, endpoint: EndpointConfig):
        self.name = name
        self.endpoint = endpoint
        self._transport: paramiko.Transport | None = None
        self._client: paramiko.SFTPClient | None = None

    def _load_private_key(self) -> paramiko.PKey | None:
        cfg = self.endpoint
        if not cfg.private_key_path:
            return None
        # Try common key types; paramiko raises if incompatible.
        try:
            return paramiko.RSAKey.from_private_key_file(cfg.private_key_path, password=cfg.password)
        except paramiko.SSHException:
            return paramiko.Ed25519Key.from_private_key_file(cfg.private_key_path, password=cfg.password)

    def connect(self) -> paramiko.SFTPClient:
        """Connect (lazy) and return a live `paramiko.SFTPClient`."""
        if self._client is not None:
            return self._client

        cfg = self.endpoint
        if not cfg.host:
            raise ValueError(f"SFTP connection '{self.name}' missing host")

        sock = socket.create_connection((cfg.host, cfg.port), timeout=cfg.timeout_s)
        try:
            transport = paramiko.Transport(sock)
        except BaseException:
            sock.close()
            raise
        transport.banner_timeout = cfg.timeout_s
        transport.auth_timeout = cfg.timeout_s
        self._transport = transport

        # __exit__ never runs when __enter__ fails, so release the transport here
        try:
            pkey = self._load_private_key()
            transport.connect(
                username=cfg.username,
                password=None if pkey else cfg.password,
                pkey=pkey,
            )
            client = paramiko.SFTPClient.from_transport(transport)
            if client is None:
                raise paramiko.SSHException(f"SFTP subsystem unavailable on {cfg.display()}")
            client.get_channel().settimeout(cfg.timeout_s)
        except BaseException:
            self.close()
            raise

        self._client = client
        return client

    @property
    def client(self) -> paramiko.SFTPClient:
        return self.connect()

    def close(self) -> None:
        """Close SFTP client + underlying transport."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None
        try:
            if self._transport is not None:
                self._transport.close()
        finally:
            self._transport = None

    def __enter__(self) -> SFTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()


class SFTPChannel(RemoteChannel):
    """Remote channel over SFTP (paramiko)."""

    def _session(self) -> SFTPConnection:
        return SFTPConnection(self.partner_id, self.endpoint)

    def _error(self, action: str, file_name: str, exc: BaseException) -> RemoteChannelError:
        return RemoteChannelError(
            f"SFTP {action} of {file_name} on {self.describe()} failed: {exc}",
            partner_id=self.partner_id,
            file_name=file_name,
            cause=exc if isinstance(exc, Exception) else None,
        )

    def exists(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        try:
            with self._session() as conn:
                check_cancelled(cancel, f"listing for {file_name}")
                entries = conn.client.listdir_attr(self.endpoint.remote_dir or ".")
        except FileNotFoundError:
            logger.debug(f"Directory {self.endpoint.remote_dir or '.'} missing on {self.describe()}")
            return False
        except SFTP_ERRORS as e:
            raise self._error("listing", file_name, e) from e

        for attr in entries:
            # longname is the server's ls -l line; str(attr) renders the same shape
            line = getattr(attr, "longname", None) or str(attr)
            if is_listing_match(line, file_name):
                logger.debug(f"File {file_name} found on {self.describe()}")
                return True
        logger.debug(f"File {file_name} not found on {self.describe()}")
        return False

    def download(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        part_path = part_path_for(local_path)
        remote_path = self.endpoint.remote_path(file_name)

        def _progress(transferred: int, total: int) -> None:
            check_cancelled(cancel, f"download of {file_name}")

        try:
            with self._session() as conn:
                conn.client.get(remote_path, str(part_path), callback=_progress)
        except FileNotFoundError as e:
            discard_partial(part_path)
            raise RemoteFileNotFoundError(
                f"{file_name} not found on {self.describe()}", partner_id=self.partner_id, file_name=file_name, cause=e
            ) from e
        except SFTP_ERRORS as e:
            discard_partial(part_path)
            raise self._error("download", file_name, e) from e
        except BaseException:
            discard_partial(part_path)
            raise

        logger.info(f"Downloaded {file_name} from {self.describe()}")
        return finish_download(part_path, local_path)

    def upload(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> UploadReceipt:
        remote_path = self.endpoint.remote_path(file_name)

        def _progress(transferred: int, total: int) -> None:
            check_cancelled(cancel, f"upload of {file_name}")

        try:
            with self._session() as conn:
                # confirm=True stats the remote file and raises on a size mismatch
                attrs = conn.client.put(str(local_path), remote_path, callback=_progress, confirm=True)
        except SFTP_ERRORS as e:
            raise self._error("upload", file_name, e) from e

        size = int(attrs.st_size or 0)
        logger.info(f"Uploaded {file_name} to {self.describe()} ({size} bytes)")
        return UploadReceipt(file_name=file_name, remote_path=remote_path, size=size, confirmation=f"size={size}")

    def delete(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        remote_path = self.endpoint.remote_path(file_name)
        try:
            with self._session() as conn:
                check_cancelled(cancel, f"delete of {file_name}")
                conn.client.remove(remote_path)
        except FileNotFoundError:
            logger.warning(f"File {file_name} not found on {self.describe()}, nothing to delete")
            return False
        except SFTP_ERRORS as e:
            raise self._error("delete", file_name, e) from e

        logger.info(f"Deleted {file_name} from {self.describe()}")
        return True
