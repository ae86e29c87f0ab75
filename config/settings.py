"""
Configuration settings for Chat Table Watch.

This module defines global settings for detection timing, text heuristics,
browser configuration, the API server and logging.
"""

import json
import logging
import os
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field, fields

from utils.errors import ConfigError

# Set up logger
logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """
    Global configuration settings for the application.
    """
    # Rescan timing (in milliseconds)
    debounce_ms: int = 100        # delay after a relevant mutation
    rescan_interval_ms: int = 5000  # periodic fallback scan

    # Text heuristics
    min_text_length: int = 20
    prose_min_text_length: int = 10
    fingerprint_length: int = 100
    noise_markers: List[str] = field(default_factory=lambda: [
        "window.__oai",
        "requestAnimationFrame",
    ])
    ui_class_patterns: List[str] = field(default_factory=lambda: [
        "text-input-field", "input", "toolbar", "button", "menu",
        "dropdown", "modal", "popup", "tooltip", "navigation",
        "header", "footer", "ng-tns",
    ])
    ui_text_markers: List[str] = field(default_factory=lambda: [
        "Deep Research",
        "Canvas",
        "Спросить Gemini",
    ])

    # Batch export entry point
    batch_min_tables: int = 2

    # Browser settings
    headless: bool = True
    browser_type: str = "chromium"  # "chromium", "firefox", or "webkit"
    browser_args: List[str] = field(default_factory=lambda: ["--disable-dev-shm-usage"])
    user_agent: Optional[str] = None
    viewport_width: int = 1280
    viewport_height: int = 720
    navigation_timeout: int = 30000  # 30 seconds
    action_timeout: int = 10000      # 10 seconds

    # API Server settings
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    json_logs: bool = False

    def __post_init__(self):
        """Validate settings after initialization."""
        self.debounce_ms = int(self.debounce_ms)
        self.rescan_interval_ms = int(self.rescan_interval_ms)
        self.navigation_timeout = int(self.navigation_timeout)
        self.action_timeout = int(self.action_timeout)

        if self.debounce_ms < 0:
            raise ConfigError("debounce_ms must not be negative", {"debounce_ms": self.debounce_ms})
        if self.rescan_interval_ms <= 0:
            raise ConfigError(
                "rescan_interval_ms must be positive",
                {"rescan_interval_ms": self.rescan_interval_ms}
            )
        if self.fingerprint_length <= 0:
            raise ConfigError(
                "fingerprint_length must be positive",
                {"fingerprint_length": self.fingerprint_length}
            )
        if self.batch_min_tables < 1:
            raise ConfigError(
                "batch_min_tables must be at least 1",
                {"batch_min_tables": self.batch_min_tables}
            )

        # Validate browser type
        valid_browsers = ["chromium", "firefox", "webkit"]
        if self.browser_type not in valid_browsers:
            raise ConfigError(f"Browser type must be one of {valid_browsers}")

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def rescan_interval_seconds(self) -> float:
        return self.rescan_interval_ms / 1000.0

    @classmethod
    def from_env(cls) -> 'Settings':
        """
        Create Settings from environment variables.

        Returns:
            Settings instance with values from environment variables
        """
        return cls(
            debounce_ms=int(os.environ.get("TABLEWATCH_DEBOUNCE_MS", 100)),
            rescan_interval_ms=int(os.environ.get("TABLEWATCH_RESCAN_INTERVAL_MS", 5000)),
            batch_min_tables=int(os.environ.get("TABLEWATCH_BATCH_MIN_TABLES", 2)),
            headless=os.environ.get("TABLEWATCH_HEADLESS", "true").lower() == "true",
            browser_type=os.environ.get("TABLEWATCH_BROWSER", "chromium"),
            navigation_timeout=int(os.environ.get("TABLEWATCH_NAVIGATION_TIMEOUT", 30000)),
            log_level=os.environ.get("TABLEWATCH_LOG_LEVEL", "INFO"),
            log_file=os.environ.get("TABLEWATCH_LOG_FILE") or None,
            json_logs=os.environ.get("TABLEWATCH_JSON_LOGS", "false").lower() == "true",
        )


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from a JSON file, falling back to defaults.

    Unknown keys in the file are ignored with a warning.

    Args:
        config_path: Path to a JSON settings file

    Returns:
        Settings instance

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    if not config_path or not os.path.exists(config_path):
        if config_path:
            logger.debug(f"Settings file not found, using defaults: {config_path}")
        return Settings()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw: Dict[str, Any] = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read settings file {config_path}: {str(e)}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file must contain a JSON object: {config_path}")

    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in raw.items():
        if key in known:
            values[key] = value
        else:
            logger.warning(f"Ignoring unknown setting '{key}' in {config_path}")

    return Settings(**values)
