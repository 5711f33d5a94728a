"""Configuration management using XDG Base Directory Specification.

Engine address, timing knobs for the playback core and the persisted
auto-play preference all live in one INI file.
"""

import configparser
import os
from pathlib import Path
from typing import Optional

from core.exceptions import ConfigurationError

APP_NAME = 'cider-tui'

DEFAULTS = {
    'engine': {
        'base_url': 'http://localhost:10767',
        'storefront': 'tw',
        'request_timeout': '5.0',
    },
    'playback': {
        'autoplay': 'false',
        'debounce_ms': '500',
        'station_poll_interval_ms': '500',
        'station_timeout_ms': '10000',
        'message_duration_ms': '2000',
        'progress_throttle_ms': '100',
        'now_playing_poll_ms': '1000',
        'end_poll_interval_ms': '250',
        'end_threshold': '0.99',
    },
}


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/cider-tui/ (or XDG_CONFIG_HOME)
    - Data: ~/.local/share/cider-tui/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self, config_home: Optional[Path] = None, data_home: Optional[Path] = None) -> None:
        """
        Initialize configuration manager.

        Args:
            config_home: Override for XDG_CONFIG_HOME
            data_home: Override for XDG_DATA_HOME
        """
        self.config_home = Path(config_home or os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.data_home = Path(data_home or os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        self.app_name = APP_NAME
        self.config_dir = self.config_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()
        self.config.read_dict(DEFAULTS)

        self._load_config()

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the process-wide config instance used by the entry point."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        if self.config_file.exists():
            # Values from the file override the defaults already loaded
            self.config.read(self.config_file)
        else:
            self.save()

    def save(self) -> None:
        """Write current configuration state to the config file."""
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from core.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value and persist it.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set (will be converted to string)
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, str(value))
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key, fallback=fallback)
        except ValueError:
            return fallback

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError:
            return fallback

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError:
            return fallback

    # Convenience properties
    @property
    def base_url(self) -> str:
        """Engine HTTP/socket origin, without trailing slash."""
        url = (self.get('engine', 'base_url') or DEFAULTS['engine']['base_url']).rstrip('/')
        if not url.startswith(('http://', 'https://')):
            raise ConfigurationError(f"engine.base_url must be an http(s) URL, got {url!r}")
        return url

    @property
    def storefront(self) -> str:
        """Catalog storefront used for catalog paths."""
        return self.get('engine', 'storefront') or DEFAULTS['engine']['storefront']

    @property
    def request_timeout(self) -> float:
        return self.get_float('engine', 'request_timeout', 5.0)

    @property
    def autoplay(self) -> bool:
        """Start a station from recent tracks when the queue runs out."""
        return self.get_bool('playback', 'autoplay', False)

    @autoplay.setter
    def autoplay(self, enabled: bool) -> None:
        self.set('playback', 'autoplay', 'true' if enabled else 'false')

    @property
    def debounce_ms(self) -> int:
        return self.get_int('playback', 'debounce_ms', 500)

    @property
    def station_poll_interval_ms(self) -> int:
        return self.get_int('playback', 'station_poll_interval_ms', 500)

    @property
    def station_timeout_ms(self) -> int:
        return self.get_int('playback', 'station_timeout_ms', 10000)

    @property
    def message_duration_ms(self) -> int:
        # Status text must clear within 1-3 s
        return max(1000, min(3000, self.get_int('playback', 'message_duration_ms', 2000)))

    @property
    def progress_throttle_ms(self) -> int:
        return self.get_int('playback', 'progress_throttle_ms', 100)

    @property
    def now_playing_poll_ms(self) -> int:
        return self.get_int('playback', 'now_playing_poll_ms', 1000)

    @property
    def end_poll_interval_ms(self) -> int:
        return self.get_int('playback', 'end_poll_interval_ms', 250)

    @property
    def end_threshold(self) -> float:
        return self.get_float('playback', 'end_threshold', 0.99)

    @property
    def log_dir(self) -> Path:
        """Get log directory."""
        log_dir = self.data_dir / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir


# Convenience function
def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
