"""
Galedi startup initialization.

Orchestrates initialization of all components in the correct order:
1. Config (with validation)
2. Logging
3. Work directory
4. Record store (schema created on first use)
"""

import os
from dataclasses import replace
from pathlib import Path

from galedi.config.loader import load_config
from galedi.config.settings import AgentConfig
from galedi.core.store import RecordStore
from galedi.exceptions import GalediError, InitializationError, StoreError
from galedi.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("galedi.initialization")


class GalediInitializer:
    """Builds the configured agent components for the CLI and the service."""

    def __init__(self, project_dir: Path, env: str | None = None, verbose: bool = False):
        self.project_dir = Path(project_dir)
        self.env = env or os.environ.get("GALEDI_ENV", "dev")
        self.verbose = verbose

        self.config: AgentConfig | None = None
        self.store: RecordStore | None = None

    def initialize_all(self, *, open_store: bool = True) -> tuple[AgentConfig, RecordStore | None]:
        """
        Initialize all components in the correct order.

        Raises:
            ConfigurationError: If the configuration is missing or invalid
            InitializationError: If any other initialization step fails
        """
        self.config = self._initialize_config()
        self._initialize_logging()
        self._initialize_work_dir()
        if open_store:
            self.store = self._initialize_store()
        return self.config, self.store

    def _initialize_config(self) -> AgentConfig:
        try:
            return load_config(self.project_dir, env=self.env)
        except GalediError:
            raise
        except Exception as e:
            raise InitializationError(f"Unexpected error loading config: {e}") from None

    def _initialize_logging(self) -> None:
        try:
            logging_config = self.config.logging
            if self.verbose:
                logging_config = replace(logging_config, level="DEBUG")
            setup_logging_from_config(logging_config, project_dir=self.project_dir)
        except (OSError, ValueError, TypeError) as e:
            raise InitializationError(f"Failed to initialize logging: {e}") from None

    def _initialize_work_dir(self) -> None:
        try:
            self.config.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InitializationError(
                f"Cannot create work directory {self.config.work_dir}: {e}\n"
                f"  Suggestion: Check 'work_dir' in config.yaml and directory permissions"
            ) from None

    def _initialize_store(self) -> RecordStore:
        store = RecordStore(self.config.store)
        try:
            store.initialize()
        except StoreError as e:
            raise InitializationError(f"Failed to initialize record store: {e}") from None
        logger.debug(f"Record store ready ({self.config.store.type})")
        return store


def initialize(
    project_dir: Path, env: str | None = None, verbose: bool = False, *, open_store: bool = True
) -> tuple[AgentConfig, RecordStore | None]:
    """
    Initialize Galedi (config, logging, work directory, record store).

    Returns:
        Tuple of (config, store); store is None when ``open_store`` is False
    """
    return GalediInitializer(project_dir, env=env, verbose=verbose).initialize_all(open_store=open_store)
