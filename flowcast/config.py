"""
Configuration management for flowcast.
"""

import os
import copy
import yaml
import toml
import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field

from .constants import (
    CONFIG_FILES, DEFAULT_CONFIG, MAX_CYCLE_TIME_DAYS, MAX_TRIALS, MIN_CYCLE_TIME_DAYS,
)
from .utils import logger, merge_dicts, find_upwards, set_log_level


class GraphConfig(BaseModel):
    """Dependency graph analysis configuration."""
    terminal_labels: List[str] = Field(default_factory=lambda: ["Done"])
    bottleneck_limit: int = Field(default=10, ge=1)
    critical_threshold: int = Field(default=5, ge=1)
    high_threshold: int = Field(default=3, ge=1)


class SamplingConfig(BaseModel):
    """Cycle-time sampling configuration."""
    min_days: float = Field(default=MIN_CYCLE_TIME_DAYS, ge=MIN_CYCLE_TIME_DAYS)
    max_days: float = Field(default=MAX_CYCLE_TIME_DAYS, le=MAX_CYCLE_TIME_DAYS)
    min_area_samples: int = Field(default=5, ge=0)
    min_samples: int = Field(default=3, ge=1)
    synthetic_count: int = Field(default=20, ge=1)
    synthetic_min_days: float = Field(default=3.0, gt=0)
    synthetic_max_days: float = Field(default=7.0, gt=0)
    high_confidence_samples: int = Field(default=20, ge=1)
    medium_confidence_samples: int = Field(default=10, ge=1)


class SimulationConfig(BaseModel):
    """Monte Carlo simulation configuration."""
    trials: int = Field(default=10_000)
    max_trials: int = Field(default=MAX_TRIALS, ge=1)
    wip_limit: int = Field(default=1)
    sprint_days: float = Field(default=14, gt=0)
    item_count: int = Field(default=10, ge=0)
    step_days: float = Field(default=0.25, gt=0)
    max_backlog_days: float = Field(default=365, gt=0)
    breakdown_trials: int = Field(default=2_000, ge=1)
    max_breakdown_sprints: int = Field(default=12, ge=1)
    seed: Optional[int] = None


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")


class FlowcastConfig(BaseModel):
    """Main configuration model."""
    graph: GraphConfig = Field(default_factory=GraphConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """Configuration manager for flowcast."""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.config_data = self._load_config()
        self._apply_environment_overrides()
        self.config = FlowcastConfig(**self.config_data)
        set_log_level(self.config.logging.level)

    @property
    def graph(self) -> GraphConfig:
        return self.config.graph

    @property
    def sampling(self) -> SamplingConfig:
        return self.config.sampling

    @property
    def simulation(self) -> SimulationConfig:
        return self.config.simulation

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in current directory or parent directories."""
        config_path = find_upwards(CONFIG_FILES)
        if config_path:
            logger.debug(f"Found config file: {config_path}")
        return config_path

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        # Start with default configuration
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file:
            config_path = Path(self.config_file)
        else:
            config_path = self._find_config_file()

        if not config_path or not config_path.exists():
            logger.debug("No config file found, using defaults")
            return config

        # Load config based on file extension
        try:
            if config_path.suffix in ['.yaml', '.yml']:
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            elif config_path.suffix == '.toml':
                with open(config_path, 'r') as f:
                    file_config = toml.load(f)
            elif config_path.suffix == '.json':
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
            else:
                logger.warning(f"Unknown config file format: {config_path}")
                return config

            config = merge_dicts(config, file_config)
            logger.info(f"Loaded config from: {config_path}")

        except (OSError, ValueError, yaml.YAMLError, toml.TomlDecodeError) as e:
            logger.error(f"Error loading config file: {e}")

        return config

    def _apply_environment_overrides(self):
        """Apply environment variable overrides to the raw configuration.

        Written into ``config_data`` so later ``set`` calls keep them.
        """
        log_level = os.getenv('FLOWCAST_LOG_LEVEL')
        if log_level:
            self.config_data.setdefault('logging', {})['level'] = log_level

        seed = os.getenv('FLOWCAST_SEED')
        if seed:
            try:
                self.config_data.setdefault('simulation', {})['seed'] = int(seed)
            except ValueError:
                logger.warning(f"Ignoring non-integer FLOWCAST_SEED: {seed!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split('.')
        value = self.config_data

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set configuration value by dot-notation key."""
        keys = key.split('.')
        config_dict = self.config_data

        for k in keys[:-1]:
            if k not in config_dict:
                config_dict[k] = {}
            config_dict = config_dict[k]

        config_dict[keys[-1]] = value

        # Recreate config object
        self.config = FlowcastConfig(**self.config_data)

    def save(self, path: Optional[str] = None) -> Path:
        """Save configuration to file."""
        if path:
            save_path = Path(path)
        else:
            save_path = Path(self.config_file or '.flowcast.yaml')

        if save_path.suffix in ['.yaml', '.yml']:
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)
        elif save_path.suffix == '.toml':
            with open(save_path, 'w') as f:
                toml.dump(self._without_nulls(self.config_data), f)
        elif save_path.suffix == '.json':
            with open(save_path, 'w') as f:
                json.dump(self.config_data, f, indent=2)
        else:
            # Default to YAML
            save_path = save_path.with_suffix('.yaml')
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)

        logger.info(f"Configuration saved to: {save_path}")
        return save_path

    def validate(self) -> bool:
        """Validate configuration."""
        try:
            FlowcastConfig(**self.config_data)
            return True
        except ValueError as e:
            logger.error(f"Configuration validation failed: {e}")
            return False

    @classmethod
    def create_default(cls, path: str = '.flowcast.yaml'):
        """Create a default configuration file."""
        config = cls()
        config.save(path)
        return config

    def merge_cli_options(self, cli_options: Dict[str, Any]) -> 'Config':
        """Merge command-line options with configuration.

        Args:
            cli_options: Dotted keys mapped to values; ``None`` values are skipped

        Returns:
            Updated Config instance
        """
        for key, value in cli_options.items():
            if value is not None:
                self.set(key, value)

        return self

    @staticmethod
    def _without_nulls(data: Dict[str, Any]) -> Dict[str, Any]:
        # TOML has no null
        result = {}
        for key, value in data.items():
            if isinstance(value, dict):
                result[key] = Config._without_nulls(value)
            elif value is not None:
                result[key] = value
        return result
