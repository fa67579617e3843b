"""
src/config.py

Configuration loader for the forest-fire stream server.
Loads YAML simulation parameters and merges with environment overrides.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
import logging

from constants import (
    DEFAULT_UPDATE_INTERVAL_S, DEFAULT_IGNITION_PROBABILITY,
    DEFAULT_GROWTH_PROBABILITY, DEFAULT_LIGHTNING_PROBABILITY,
    DEFAULT_BURN_DURATION, DEFAULT_CELL_STATE, RETIRED_SESSION_MEMORY,
    API_HOST, API_PORT, WEBSOCKET_HOST, WEBSOCKET_PORT, API_BASE_PATH,
    SERVICE_VERSION
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FOREST_FIRE_CONFIG"

# ============================================================================
# DATA CLASSES FOR TYPE-SAFE CONFIG
# ============================================================================

@dataclass
class SimulationConfig:
    """Top-level service identity."""
    name: str = "Forest Fire Delta Stream"
    version: str = SERVICE_VERSION

@dataclass
class FireDefaultsConfig:
    """Defaults for SimulationParameters keys a client leaves out."""
    update_interval_s: float = DEFAULT_UPDATE_INTERVAL_S
    ignition_probability: float = DEFAULT_IGNITION_PROBABILITY
    growth_probability: float = DEFAULT_GROWTH_PROBABILITY
    lightning_probability: float = DEFAULT_LIGHTNING_PROBABILITY
    burn_duration: int = DEFAULT_BURN_DURATION
    seed: Optional[int] = None
    default_cell_state: str = DEFAULT_CELL_STATE.value

@dataclass
class SessionConfig:
    """Session registry parameters."""
    retired_session_memory: int = RETIRED_SESSION_MEMORY

@dataclass
class LoggingConfig:
    """Logging configuration."""
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_generations: bool = False

@dataclass
class ServerConfig:
    """REST and websocket server configuration."""
    api_host: str = API_HOST
    api_port: int = API_PORT
    websocket_host: str = WEBSOCKET_HOST
    websocket_port: int = WEBSOCKET_PORT
    websocket_enabled: bool = True
    api_base_path: str = API_BASE_PATH
    cors_origins: str = "*"

@dataclass
class ForestFireConfig:
    """Master configuration object."""
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    fire_defaults: FireDefaultsConfig = field(default_factory=FireDefaultsConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

# ============================================================================
# CONFIGURATION LOADER
# ============================================================================

class ConfigLoader:
    """Loads and manages service configuration."""

    SECTIONS = {
        "simulation": SimulationConfig,
        "fire_defaults": FireDefaultsConfig,
        "sessions": SessionConfig,
        "logging": LoggingConfig,
        "server": ServerConfig,
    }

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_file: Path to YAML config file. If None, uses
                $FOREST_FIRE_CONFIG or the default location.
        """
        self.config_file = (config_file or os.environ.get(CONFIG_ENV_VAR)
                            or self._find_default_config())
        self.config: ForestFireConfig = self._load_config()

    @staticmethod
    def _find_default_config() -> str:
        """Find the default config file in project structure."""
        candidates = [
            Path(__file__).parent.parent / "config" / "simulation_params.yaml",
            Path.cwd() / "config" / "simulation_params.yaml",
        ]
        for path in candidates:
            if path.exists():
                logger.info(f"Found config file: {path}")
                return str(path)
        raise FileNotFoundError(
            "Could not find simulation_params.yaml. "
            "Please ensure it exists in ./config/ directory."
        )

    def _load_config(self) -> ForestFireConfig:
        """Load configuration from YAML file."""
        if not Path(self.config_file).exists():
            raise FileNotFoundError(f"Config file not found: {self.config_file}")

        with open(self.config_file, 'r') as f:
            data = yaml.safe_load(f)

        if not data:
            raise ValueError(f"Config file is empty: {self.config_file}")

        return self._parse_config(data)

    @classmethod
    def _parse_config(cls, data: Dict[str, Any]) -> ForestFireConfig:
        """Parse YAML data into typed config objects."""
        config = ForestFireConfig()

        for section, section_cls in cls.SECTIONS.items():
            if section in data and data[section] is not None:
                setattr(config, section, section_cls(**data[section]))

        unknown = set(data) - set(cls.SECTIONS)
        if unknown:
            logger.warning(f"Ignoring unknown config sections: {sorted(unknown)}")

        return config

    def get_config(self) -> ForestFireConfig:
        """Return loaded configuration."""
        return self.config

    def override_param(self, key_path: str, value: Any) -> None:
        """
        Override a configuration parameter.

        Key path format: "section.param"
        Example: config.override_param("server.api_port", 9090)
        """
        parts = key_path.split('.')
        obj = self.config

        # Navigate to parent object
        for part in parts[:-1]:
            obj = getattr(obj, part)

        if not hasattr(obj, parts[-1]):
            raise AttributeError(f"Unknown config key: {key_path}")

        setattr(obj, parts[-1], value)
        logger.info(f"Config override: {key_path} = {value}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (for serialization)."""
        def dataclass_to_dict(obj):
            if hasattr(obj, '__dataclass_fields__'):
                return {
                    field_name: dataclass_to_dict(getattr(obj, field_name))
                    for field_name in obj.__dataclass_fields__
                }
            return obj

        return dataclass_to_dict(self.config)

# ============================================================================
# GLOBAL CONFIG INSTANCE (SINGLETON PATTERN)
# ============================================================================

_global_config: Optional[ConfigLoader] = None

def initialize_config(config_file: Optional[str] = None) -> ForestFireConfig:
    """Initialize global configuration."""
    global _global_config
    _global_config = ConfigLoader(config_file)
    return _global_config.get_config()

def override_config(key_path: str, value: Any) -> None:
    """Override a global configuration parameter."""
    global _global_config
    if _global_config is None:
        _global_config = ConfigLoader()
    _global_config.override_param(key_path, value)
