"""
Shared plumbing for the ibis backends that hold the record store.
"""

from abc import ABC, abstractmethod
from typing import Any

import ibis

from galedi.config.settings import StoreConfig
from galedi.exceptions import StoreConnectionError
from galedi.utils.logging import get_logger

logger = get_logger("galedi.connections.base")


class BaseConnection(ABC):
    """
    Lazily opened ibis backend for the record store.

    Subclasses only know how to open their backend (``_open``) and how to
    name it in messages (``target``). The handle is opened on first use and
    dropped by ``reset`` after a connectivity failure so the next cycle
    reconnects instead of reusing a dead session.
    """

    def __init__(self, name: str, config: StoreConfig):
        self.name = name
        self.config = config
        self._backend: ibis.BaseBackend | None = None

    @property
    @abstractmethod
    def target(self) -> str:
        """Human readable location of the store (path or host/database)."""

    @abstractmethod
    def _open(self) -> ibis.BaseBackend:
        """Open a new backend handle."""

    @property
    def connection(self) -> ibis.BaseBackend:
        if self._backend is None:
            try:
                self._backend = self._open()
            except StoreConnectionError:
                raise
            except Exception as e:
                raise StoreConnectionError(
                    f"Cannot open {self.name} store at {self.target}: {e}",
                    details={"target": self.target},
                ) from e
            logger.debug(f"Opened {self.name} store at {self.target}")
        return self._backend

    @property
    def is_connected(self) -> bool:
        return self._backend is not None

    def reset(self) -> None:
        """Forget the current handle after a connectivity failure."""
        backend, self._backend = self._backend, None
        if backend is not None:
            _disconnect_quietly(backend, self.target)

    def close(self) -> None:
        if self._backend is not None:
            logger.debug(f"Closing {self.name} store at {self.target}")
        self.reset()

    def __enter__(self) -> "BaseConnection":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(target={self.target!r})"


def _disconnect_quietly(backend: ibis.BaseBackend, target: str) -> None:
    # A broken session often fails to disconnect too; the handle is discarded either way.
    try:
        backend.disconnect()
    except Exception as e:
        logger.debug(f"Ignoring disconnect failure for {target}: {e}")
