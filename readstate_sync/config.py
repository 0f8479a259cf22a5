"""
Configuration management for the sync tool
"""

import logging
import os

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = "config/config.yaml"

DEFAULTS = {
    "timestamp_tolerance_seconds": 5,
    "db_timeout_seconds": 5,
    "write_retry_delay_seconds": 0.5,
    "parallel": False,
    "workers": 3,
    "dry_run": False,
    "sync_to_host": True,
    "sync_to_vendor": True,
    "sync_schedule": "*/30 * * * *",
    "timezone": "Etc/UTC",
}

# Environment variable -> global config key
ENV_OVERRIDES = {
    "READSTATE_VENDOR_DB": "vendor_db_path",
    "READSTATE_HOST_DIR": "host_metadata_dir",
    "READSTATE_DRY_RUN": "dry_run",
}


class Config:
    """Configuration class that loads settings from config/config.yaml (YAML)"""

    def __init__(self, config_path=DEFAULT_CONFIG_PATH, env_file: str = ".env") -> None:
        self.logger = logging.getLogger(__name__)
        self.config_path = config_path
        self.env_file = env_file
        self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> None:
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Config file not found: {self.config_path}")
        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f) or {}
        self.global_config = dict(DEFAULTS)
        self.global_config.update(config.get("global") or {})
        self.logger.info(f"Loaded configuration from {self.config_path}")

    def _apply_env_overrides(self) -> None:
        if self.env_file and os.path.exists(self.env_file):
            load_dotenv(self.env_file)
            self.logger.debug(f"Loaded environment overrides from {self.env_file}")

        for env_name, key in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value is None or value == "":
                continue
            if key == "dry_run":
                self.global_config[key] = value.lower() in ("true", "1", "yes")
            else:
                self.global_config[key] = value
            self.logger.debug(f"{key} overridden by {env_name}")

    def _validate_config(self) -> None:
        errors = []
        for key in ["vendor_db_path", "host_metadata_dir"]:
            if not self.global_config.get(key):
                errors.append(f"Missing global config: {key}")

        numeric = ["timestamp_tolerance_seconds", "db_timeout_seconds", "write_retry_delay_seconds", "workers"]
        for key in numeric:
            value = self.global_config.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                errors.append(f"Invalid global config: {key} must be a non-negative number (got {value!r})")

        if isinstance(self.global_config.get("workers"), int) and self.global_config["workers"] < 1:
            errors.append("Invalid global config: workers must be at least 1")

        for key in ["parallel", "dry_run", "sync_to_host", "sync_to_vendor"]:
            if not isinstance(self.global_config.get(key), bool):
                errors.append(f"Invalid global config: {key} must be true or false")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
            self.logger.error(error_msg)
            raise ValueError(error_msg)
        self.logger.info("Configuration validation passed")

    def get_global(self) -> dict:
        return self.global_config

    def get_cron_config(self) -> dict:
        """Get cron configuration from global settings"""
        return {
            "schedule": self.global_config.get("sync_schedule", DEFAULTS["sync_schedule"]),
            "timezone": self.global_config.get("timezone", DEFAULTS["timezone"]),
        }

    def __str__(self) -> str:
        return f"Config: {self.config_path}, global={self.global_config}"
