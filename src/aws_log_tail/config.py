"""Configuration management for the CLI"""

import yaml
from datetime import tzinfo
from pathlib import Path
from typing import Dict, Optional, Any
from dataclasses import dataclass

from dateutil import tz

from .core.exceptions import ValidationError
from .core.logging import logger

DEFAULT_CONFIG_PATH = Path.home() / '.aws-log-tail' / 'config.yaml'
DEFAULT_LOG_GROUP = '/var/log/messages'
DEFAULT_LIMIT = 100
DEFAULT_POLL_INTERVAL = 5.0


def _poll_interval(value: Any) -> float:
    """A poll interval that is not positive would poll back to back."""
    interval = float(value)
    if interval <= 0:
        logger.warning(f"Ignoring poll_interval {value}: must be positive, using {DEFAULT_POLL_INTERVAL}")
        return DEFAULT_POLL_INTERVAL
    return interval


@dataclass
class Config:
    """Main configuration structure"""
    log_group: str = DEFAULT_LOG_GROUP
    region: Optional[str] = None
    profile: Optional[str] = None
    limit: int = DEFAULT_LIMIT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    timezone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for YAML serialization"""
        return {
            'log_group': self.log_group,
            'region': self.region,
            'profile': self.profile,
            'limit': self.limit,
            'poll_interval': self.poll_interval,
            'timezone': self.timezone
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary"""
        return cls(
            log_group=data.get('log_group') or DEFAULT_LOG_GROUP,
            region=data.get('region'),
            profile=data.get('profile'),
            limit=int(data.get('limit', DEFAULT_LIMIT)),
            poll_interval=_poll_interval(data.get('poll_interval', DEFAULT_POLL_INTERVAL)),
            timezone=data.get('timezone')
        )

    def zone(self) -> tzinfo:
        """Time zone for rendered timestamps; local when unset."""
        if not self.timezone:
            return tz.tzlocal()
        zone = tz.gettz(self.timezone)
        if zone is None:
            raise ValidationError(f"Unknown time zone: {self.timezone}", "INVALID_TIMEZONE",
                                  {"timezone": self.timezone})
        return zone


class ConfigManager:
    """Manages configuration file operations"""

    def __init__(self, config_path: str = str(DEFAULT_CONFIG_PATH)):
        self.config_path = Path(config_path)
        self.config_dir = self.config_path.parent

    def ensure_config_dir(self):
        """Ensure configuration directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> Config:
        """Load configuration from file"""
        if not self.config_path.exists():
            # Return default config
            return Config()

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
                return Config.from_dict(data)
        except (OSError, yaml.YAMLError, TypeError, ValueError, AttributeError) as e:
            # Return default config on error
            logger.warning(f"Failed to load config {self.config_path}: {e}")
            return Config()

    def save(self, config: Config):
        """Save configuration to file"""
        self.ensure_config_dir()

        with open(self.config_path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False)
