import os
from pathlib import Path
from typing import Dict, Any
import yaml
import logging

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ['tracker', 'session', 'selector', 'validator',
                     'deduplicator', 'pipeline', 'logging']


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class ConfigLoader:
    """Handle loading and validation of configuration"""

    def __init__(self, config_path: str = None):
        """
        Initialize config loader

        Args:
            config_path: Path to custom config file (optional)
        """
        self.config_path = config_path or self._get_default_config_path()
        self.config = {}

    @staticmethod
    def _get_default_config_path() -> str:
        """Get path to default config file"""
        return str(Path(__file__).parent / 'default_config.yaml')

    def load(self) -> Dict[str, Any]:
        """
        Load and validate configuration

        Returns:
            Validated configuration dictionary
        """
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self.config = yaml.safe_load(f) or {}

            self._validate_config()
            return self.config

        except Exception as e:
            logger.error(f"Error loading config from {self.config_path}: {str(e)}")
            raise

    def _validate_config(self):
        """Validate required configuration parameters"""
        for section in REQUIRED_SECTIONS:
            if section not in self.config:
                raise ValueError(f"Missing required config section: {section}")

        if 'version' not in self.config['logging']:
            raise ValueError("Missing required logging version")

        threshold = self.config['tracker'].get('iou_threshold', 0.3)
        if not 0 <= threshold <= 1:
            raise ValueError(f"tracker.iou_threshold must be within [0, 1], got {threshold}")

        direction = str(self.config['pipeline'].get('direction', 'ENTRY')).upper()
        if direction not in ('ENTRY', 'EXIT'):
            raise ValueError(f"pipeline.direction must be ENTRY or EXIT, got {direction}")

    def update_from_env(self):
        """Update configuration from environment variables"""
        env_mappings = {
            'ANPR_IOU_THRESHOLD': ('tracker', 'iou_threshold', float),
            'ANPR_MAX_LOST_FRAMES': ('tracker', 'max_lost_frames', int),
            'ANPR_FALLBACK_VALIDATION': ('validator', 'fallback_enabled', _to_bool),
            'ANPR_DIRECTION': ('pipeline', 'direction', lambda x: x.upper()),
            'ANPR_GATE': ('pipeline', 'gate', str),
        }

        for env_var, (section, key, type_conv) in env_mappings.items():
            if env_var in os.environ:
                try:
                    self.config[section][key] = type_conv(os.environ[env_var])
                except Exception as e:
                    logger.warning(
                        f"Failed to set {env_var} config value: {str(e)}"
                    )

        if 'ANPR_LOG_LEVEL' in os.environ:
            level = os.environ['ANPR_LOG_LEVEL'].upper()
            self.config['logging'].setdefault('root', {})['level'] = level

        # Overridden values must pass the same checks as file values
        self._validate_config()
        return self.config
