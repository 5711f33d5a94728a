"""Logging setup for the terminal client.

One application logger with per-module children. Warnings and errors go to
stderr so they stay visible next to the terminal UI; everything is written to
a rotating file under the XDG data directory.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
# None

ROOT_LOGGER_NAME = "cider-tui"


class ClientLogger:
    """
    Process-wide logger with file and console output.

    Supports:
    - File logging to the XDG data directory
    - Console output for warnings and errors
    - Environment variable control (CIDER_TUI_DEBUG)
    """

    _instance: Optional["ClientLogger"] = None
    _initialized: bool = False

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for log files (defaults to XDG data dir)
        """
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        if ClientLogger._initialized:
            return

        self.logger.setLevel(
            logging.DEBUG if os.getenv("CIDER_TUI_DEBUG") else logging.INFO
        )

        # Prevent duplicate handlers
        if self.logger.handlers:
            return

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Console handler (stderr); the terminal UI owns stdout
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir is None:
            xdg_data = os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")
            log_dir = Path(xdg_data) / "cider-tui" / "logs"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / "cider-tui.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
        except OSError as e:
            self.logger.warning("File logging disabled: %s", e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        ClientLogger._initialized = True

    @classmethod
    def get_logger(cls, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger instance.

        Args:
            name: Logger name (creates child logger)

        Returns:
            Logger instance
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if name == ROOT_LOGGER_NAME:
            return root
        return root.getChild(name)

    @classmethod
    def set_level(cls, level: int) -> None:
        """Set logging level for the application logger."""
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return ClientLogger.get_logger(name)


def setup_logging(log_dir: Optional[Path] = None) -> logging.Logger:
    """Install handlers once and return the application logger."""
    if ClientLogger._instance is None:
        ClientLogger._instance = ClientLogger(log_dir=log_dir)
    return ClientLogger._instance.logger
