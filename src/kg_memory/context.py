"""
Application context for runtime state.

This module provides a centralized container for runtime dependencies
(settings, logger, storage adapter, graph manager) that are initialized once at
startup and accessed throughout the application.

Usage:
    from .context import ctx

    # At startup (in __main__.py or server.py):
    ctx.init()

    # Anywhere else:
    ctx.settings.debug
    ctx.logger.info("...")
    await ctx.manager.read_graph()
"""

from __future__ import annotations

import logging as lg
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manager import KnowledgeGraphManager
    from .settings import KGSettings
    from .storage.base import StorageAdapter

LOGGER_NAME = "kg-memory"
LOG_FILE_NAME = "kg-memory.log"


class AppContext:
    """
    Singleton container for application runtime state.

    Attributes:
        settings: Application settings (loaded from CLI/env/defaults)
        logger: Configured logger instance
        storage: The storage adapter selected by the settings
        manager: The knowledge graph manager over that storage
    """

    _instance: "AppContext | None" = None
    _initialized: bool = False

    def __new__(cls) -> "AppContext":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        # Avoid re-initializing on repeated __init__ calls
        pass

    def init(self, settings: "KGSettings | None" = None) -> "AppContext":
        """
        Initialize the application context. Call once at startup.

        Loads settings (unless given), configures logging, and builds the storage
        adapter and the graph manager.

        Returns:
            self for method chaining
        """
        if self._initialized:
            return self

        # Import here to avoid circular imports and control load order
        from .manager import KnowledgeGraphManager
        from .settings import KGSettings
        from .storage import build_storage

        self._settings = settings if settings is not None else KGSettings.load()
        self._logger = self._configure_logger()

        self._storage = build_storage(self._settings)
        self._manager = KnowledgeGraphManager(self._storage)
        self._logger.debug(f"Storage initialized: {self._storage!r}")

        self._initialized = True
        return self

    def reset(self) -> None:
        """Forget the initialized state so init() can run again (used by tests and the import tool)."""
        if self._initialized:
            for handler in list(self._logger.handlers):
                if isinstance(handler, lg.FileHandler):
                    self._logger.removeHandler(handler)
                    handler.close()
        self._initialized = False

    def _configure_logger(self) -> lg.Logger:
        """Configure and return the application logger."""
        level = lg.DEBUG if self._settings.debug else lg.INFO
        lg.basicConfig(level=level)
        logger = lg.getLogger(LOGGER_NAME)
        logger.setLevel(level)

        # Add file handler
        log_path = Path(self._settings.project_root) / LOG_FILE_NAME
        if not any(isinstance(h, lg.FileHandler) for h in logger.handlers):
            file_handler = lg.FileHandler(filename=log_path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(lg.Formatter("%(asctime)s %(levelname)s %(message)s"))
            logger.addHandler(file_handler)

        return logger

    @property
    def settings(self) -> "KGSettings":
        """Get application settings. Raises if not initialized."""
        if not self._initialized:
            raise RuntimeError("AppContext not initialized. Call ctx.init() first.")
        return self._settings

    @property
    def logger(self) -> lg.Logger:
        """Get configured logger. Raises if not initialized."""
        if not self._initialized:
            raise RuntimeError("AppContext not initialized. Call ctx.init() first.")
        return self._logger

    @property
    def storage(self) -> "StorageAdapter":
        if not self._initialized:
            raise RuntimeError("AppContext not initialized. Call ctx.init() first.")
        return self._storage

    @property
    def manager(self) -> "KnowledgeGraphManager":
        if not self._initialized:
            raise RuntimeError("AppContext not initialized. Call ctx.init() first.")
        return self._manager

    @property
    def is_initialized(self) -> bool:
        """Check if context has been initialized."""
        return self._initialized


# Global context instance - import this
ctx = AppContext()

__all__ = ["ctx", "AppContext"]
