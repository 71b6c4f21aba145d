"""
Timeline Configuration Manager
Handles loading and saving tunable timeline settings.

Settings live in an optional JSON file under a "timeline" section and are
layered over DEFAULT_CONFIG, so a file only needs to hold the values it
overrides.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class TimelineConfig:
    """
    Manages timeline settings grouped by section.
    """

    DEFAULT_CONFIG = {
        'filter': {
            'search_debounce_ms': 300
        },
        'seek': {
            'reload_coverage_ratio': 0.9,
            'reload_margin_ms': 1000
        },
        'range_selection': {
            'min_range_ms': 100
        },
        'overlay': {
            'critical_marker_limit': 50
        },
        'renderer': {
            'row_height': 36,
            'overscan': 10,
            'frame_interval_ms': 16
        },
        'sessions': {
            'list_limit': 50
        },
        'logging': {
            'level': 'INFO',
            'file': None
        }
    }

    SECTION_KEY = 'timeline'

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to configuration file (optional)
        """
        self.config_file = config_file
        # Copy each section so edits never touch the class defaults
        self.config: Dict[str, Dict[str, Any]] = {}
        for key, value in self.DEFAULT_CONFIG.items():
            self.config[key] = value.copy()

        if config_file and os.path.exists(config_file):
            self.load()

    def load(self):
        """Load settings from the configuration file."""
        if not self.config_file or not os.path.exists(self.config_file):
            return

        if os.path.getsize(self.config_file) == 0:
            return

        try:
            with open(self.config_file, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading timeline configuration from {self.config_file}: {e}")
            return

        section = data.get(self.SECTION_KEY, {}) if isinstance(data, dict) else {}
        for name, values in section.items():
            if name not in self.config:
                logger.warning(f"Ignoring unknown configuration section '{name}'")
                continue
            if isinstance(values, dict):
                self.config[name].update(values)

        logger.info(f"Loaded timeline configuration from {self.config_file}")

    def save(self):
        """Save settings to the configuration file, keeping other sections."""
        if not self.config_file:
            return

        existing_data = {}
        if os.path.exists(self.config_file) and os.path.getsize(self.config_file) > 0:
            try:
                with open(self.config_file, 'r') as f:
                    existing_data = json.load(f)
            except json.JSONDecodeError:
                # Not valid JSON, start fresh
                existing_data = {}

        existing_data[self.SECTION_KEY] = self.config

        config_dir = os.path.dirname(self.config_file)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        try:
            with open(self.config_file, 'w') as f:
                json.dump(existing_data, f, indent=2)
        except OSError as e:
            logger.error(f"Error saving timeline configuration: {e}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a single setting.

        Args:
            section: Section name (e.g. 'renderer')
            key: Setting name within the section

        Returns:
            The configured value, or default if unknown
        """
        return self.config.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any):
        self.config.setdefault(section, {})[key] = value
        self.save()

    def reset_to_defaults(self, section: Optional[str] = None):
        """
        Reset settings to defaults.

        Args:
            section: Section to reset (None = all sections)
        """
        if section:
            if section in self.DEFAULT_CONFIG:
                self.config[section] = self.DEFAULT_CONFIG[section].copy()
        else:
            for key, value in self.DEFAULT_CONFIG.items():
                self.config[key] = value.copy()
        self.save()

    # Typed accessors

    @property
    def search_debounce_ms(self) -> int:
        return int(self.get('filter', 'search_debounce_ms', 300))

    @property
    def reload_coverage_ratio(self) -> float:
        return float(self.get('seek', 'reload_coverage_ratio', 0.9))

    @property
    def reload_margin_ms(self) -> int:
        return int(self.get('seek', 'reload_margin_ms', 1000))

    @property
    def min_range_ms(self) -> int:
        return int(self.get('range_selection', 'min_range_ms', 100))

    @property
    def critical_marker_limit(self) -> int:
        return int(self.get('overlay', 'critical_marker_limit', 50))

    @property
    def row_height(self) -> int:
        return int(self.get('renderer', 'row_height', 36))

    @property
    def overscan(self) -> int:
        return int(self.get('renderer', 'overscan', 10))

    @property
    def frame_interval_ms(self) -> int:
        return int(self.get('renderer', 'frame_interval_ms', 16))

    @property
    def session_list_limit(self) -> int:
        return int(self.get('sessions', 'list_limit', 50))

    @property
    def log_level(self) -> str:
        return str(self.get('logging', 'level', 'INFO'))

    @property
    def log_file(self) -> Optional[str]:
        return self.get('logging', 'file')
