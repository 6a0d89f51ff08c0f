"""Configuration management with validation and environment overrides."""
import os
import json
from typing import Any, Dict, Optional, Union
from dataclasses import dataclass, field
from pathlib import Path
import logging

from .models import DEFAULT_RETRIES, DEFAULT_TIMEOUT, Priority, PRIORITY_ORDER


def _default_concurrency() -> Dict[str, int]:
    return {"high": 3, "medium": 2, "low": 1}


def parse_concurrency(value: Union[str, Dict[str, Any]]) -> Dict[str, int]:
    """Parse a concurrency mapping.

    Accepts a dict or a string like ``"high=3,medium=2,low=1"``. Classes not
    mentioned keep their defaults.
    """
    limits = _default_concurrency()
    if isinstance(value, str):
        items = {}
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            if "=" not in part:
                raise ValueError(f"Invalid concurrency entry: {part!r}")
            name, limit = part.split("=", 1)
            items[name.strip()] = limit.strip()
        value = items
    elif not isinstance(value, dict):
        raise ValueError("concurrency must be a mapping or 'class=limit' string")

    for name, limit in value.items():
        key = name.value if isinstance(name, Priority) else str(name).lower()
        if key not in limits:
            raise ValueError(f"Unknown priority class in concurrency: {name}")
        limits[key] = int(limit)
    return limits


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PreloaderConfig:
    """Configuration class with validation and type safety."""

    # Per-class concurrency limits
    concurrency: Dict[str, int] = field(default_factory=_default_concurrency)

    # Resource defaults
    default_timeout: float = DEFAULT_TIMEOUT  # seconds
    default_retries: int = DEFAULT_RETRIES

    # Backoff before attempt k+1 is backoff_base * backoff_factor ** (k - 1)
    backoff_base: float = 0.5  # seconds
    backoff_factor: float = 2.0

    # Reject unregistered prerequisites and cycles at start()
    validate_dependencies: bool = False

    # HTTP
    user_agent: str = "preloader/0.1"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values."""
        self.concurrency = parse_concurrency(self.concurrency)
        for name, limit in self.concurrency.items():
            if limit < 0:
                raise ValueError(f"concurrency for {name} cannot be negative")

        if sum(self.concurrency.values()) == 0:
            logging.warning("All concurrency limits are 0; nothing will be admitted")

        if self.default_timeout <= 0:
            raise ValueError("default_timeout must be positive")

        if self.default_retries < 0:
            raise ValueError("default_retries cannot be negative")

        if self.backoff_base < 0:
            raise ValueError("backoff_base cannot be negative")

        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"Invalid log_level: {self.log_level}")

    def limit_for(self, priority: Priority) -> int:
        return self.concurrency[priority.value]

    @property
    def total_concurrency(self) -> int:
        return sum(self.concurrency[p.value] for p in PRIORITY_ORDER)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreloaderConfig":
        """Create configuration from dictionary with type conversion.

        Args:
            data: Configuration dictionary

        Returns:
            PreloaderConfig instance
        """
        converted = {}

        for key, value in data.items():
            if key == "concurrency":
                converted[key] = parse_concurrency(value)
            elif key in ("default_timeout", "backoff_base", "backoff_factor"):
                converted[key] = float(value)
            elif key == "default_retries":
                converted[key] = int(value)
            elif key == "validate_dependencies":
                converted[key] = _parse_bool(value)
            else:
                converted[key] = value

        return cls(**converted)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "concurrency": dict(self.concurrency),
            "default_timeout": self.default_timeout,
            "default_retries": self.default_retries,
            "backoff_base": self.backoff_base,
            "backoff_factor": self.backoff_factor,
            "validate_dependencies": self.validate_dependencies,
            "user_agent": self.user_agent,
            "log_level": self.log_level,
        }


class ConfigManager:
    """Manages configuration loading and environment variable integration."""

    def __init__(self):
        self._config: Optional[PreloaderConfig] = None
        self.logger = logging.getLogger(__name__)

    def load_config(
        self,
        config_path: Optional[Union[str, Path]] = None,
        use_env_vars: bool = True
    ) -> PreloaderConfig:
        """Load configuration from file and environment variables.

        Args:
            config_path: Path to configuration JSON file
            use_env_vars: Whether to override with environment variables

        Returns:
            PreloaderConfig instance
        """
        config_data = {}

        if config_path:
            config_data = self._load_from_file(config_path)
        else:
            default_paths = [
                "preloader.json",
                Path.home() / ".preloader" / "config.json"
            ]

            for path in default_paths:
                if Path(path).exists():
                    config_data = self._load_from_file(path)
                    break

        if use_env_vars:
            config_data.update(self._load_from_env())

        self._config = PreloaderConfig.from_dict(config_data)
        return self._config

    def get_config(self) -> PreloaderConfig:
        """Get current configuration, loading defaults if not already loaded."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def _load_from_file(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """Load configuration from JSON file.

        Args:
            config_path: Path to configuration file

        Returns:
            Configuration dictionary
        """
        path = Path(config_path)
        if not path.exists():
            self.logger.warning(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")
        except OSError as e:
            raise RuntimeError(f"Failed to load configuration file {config_path}: {e}")

        if not isinstance(data, dict):
            raise ValueError("Configuration file must contain a JSON object")

        self.logger.info(f"Loaded configuration from {path}")
        return data

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config = {}

        env_mappings = {
            "PRELOADER_CONCURRENCY": "concurrency",
            "PRELOADER_TIMEOUT": "default_timeout",
            "PRELOADER_RETRIES": "default_retries",
            "PRELOADER_BACKOFF_BASE": "backoff_base",
            "PRELOADER_BACKOFF_FACTOR": "backoff_factor",
            "PRELOADER_VALIDATE_DEPENDENCIES": "validate_dependencies",
            "PRELOADER_USER_AGENT": "user_agent",
            "LOG_LEVEL": "log_level",  # Common alternative
            "PRELOADER_LOG_LEVEL": "log_level",
        }

        for env_var, config_key in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                env_config[config_key] = value
                self.logger.debug(f"Using environment variable {env_var} for {config_key}")

        return env_config

    def save_config(
        self,
        config: PreloaderConfig,
        config_path: Union[str, Path]
    ) -> None:
        """Save configuration to JSON file."""
        path = Path(config_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(config.to_dict(), f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save configuration to {config_path}: {e}")

        self.logger.info(f"Saved configuration to {path}")

    def reset(self) -> None:
        """Reset cached configuration."""
        self._config = None


_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    return _config_manager
