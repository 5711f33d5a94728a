#!/usr/bin/env python3
"""Cider TUI - Main entry point."""

import sys
import gi
gi.require_version('GLib', '2.0')
from gi.repository import GLib

from core.application import PlayerApplication
from core.config import get_config
from core.events import EventBus
from core.exceptions import ConfigurationError
from core.logging import get_logger, setup_logging
from core.scheduler import GLibScheduler

logger = get_logger(__name__)


def _log_now_playing(data):
    logger.info("Now playing: %s", (data or {}).get("track_id"))


def _log_status(data):
    message = (data or {}).get("message")
    if message:
        logger.info("Status: %s", message)


def main():
    """Main entry point."""
    # Initialize config (creates directories, loads settings)
    config = get_config()

    # Initialize logging (uses config for log directory)
    setup_logging(log_dir=config.log_dir)

    try:
        app = PlayerApplication(config, GLibScheduler())
    except ConfigurationError as e:
        logger.error("Invalid configuration in %s: %s", config.config_file, e)
        return 1
    app.event_bus.subscribe(EventBus.NOW_PLAYING_CHANGED, _log_now_playing)
    app.event_bus.subscribe(EventBus.STATUS_MESSAGE_CHANGED, _log_status)

    loop = GLib.MainLoop()
    app.start()
    try:
        loop.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        app.shutdown()
    return 0


if __name__ == '__main__':
    sys.exit(main())
