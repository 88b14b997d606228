"""Configuration loader for farmbot.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values using the FARMBOT_ prefix.
Nested keys use double underscores: FARMBOT_COMBAT__ENGAGEMENT_RANGE=30
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class AgentConfig(BaseModel):
    """Control loop settings."""

    tick_ms: int = Field(default=50, ge=5, le=1000, description="Tick period in milliseconds")
    attach_retry_seconds: float | None = Field(
        default=None, ge=0.5, le=60.0, description="Overrides the recovery profile backoff"
    )
    recovery_profile: str = Field(default="balanced", pattern="^(conservative|balanced|aggressive)$")
    error_log_interval_seconds: float = Field(default=10.0, ge=0.0, le=600.0)
    enable_signal_handlers: bool = Field(default=True)


class WorldConfig(BaseModel):
    """Entity tracking settings."""

    stale_ticks: int = Field(default=5, ge=1, le=1000)
    scan_radius: float = Field(default=50.0, gt=0)


class TargetWeightsConfig(BaseModel):
    """Target priority weights."""

    level_delta_factor: float = Field(default=0.1, ge=0.0, le=1.0)
    boss_multiplier: float = Field(default=3.0, ge=1.0)
    elite_multiplier: float = Field(default=2.0, ge=1.0)
    distance_weight: float = Field(default=0.05, ge=0.0)


class BossTacticsConfig(BaseModel):
    """Parameter override applied while the primary target is a boss."""

    engagement_range_multiplier: float = Field(default=1.5, ge=1.0, le=5.0)
    retreat_threshold: float = Field(default=0.4, ge=0.0, le=1.0)


class AbilityConfig(BaseModel):
    """Declarative ability definition."""

    name: str = Field(..., min_length=1)
    binding: str = Field(..., min_length=1)
    cooldown: float = Field(default=0.0, ge=0.0)
    range: float = Field(default=0.0, ge=0.0, description="0 means self-cast / unlimited")
    cost: float = Field(default=0.0, ge=0.0)
    roles: list[str] = Field(default_factory=lambda: ["offensive"])
    priority: int = Field(default=0)
    recheck: str = Field(default="always")


def _default_abilities() -> list[AbilityConfig]:
    return [
        AbilityConfig(name="primary_attack", binding="F1", cooldown=0.5, range=4.0, priority=1),
        AbilityConfig(name="heavy_strike", binding="F2", cooldown=4.0, range=4.0, cost=10, priority=5),
        AbilityConfig(
            name="ranged_volley", binding="F3", cooldown=6.0, range=15.0, cost=15, priority=4,
            recheck="target_in_range",
        ),
        AbilityConfig(
            name="healing_potion", binding="R", cooldown=10.0, roles=["defensive"], priority=10,
            recheck="health_below_half",
        ),
        AbilityConfig(name="barrier", binding="F4", cooldown=20.0, cost=20, roles=["defensive"], priority=5),
        AbilityConfig(name="dash", binding="F5", cooldown=8.0, range=10.0, roles=["movement"], priority=1),
    ]


class CombatConfig(BaseModel):
    """Combat engine settings."""

    tactics: str = Field(default="balanced", pattern="^(aggressive|defensive|balanced|boss_only|kiting)$")
    engagement_range: float = Field(default=25.0, gt=0)
    heal_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    retreat_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    near_death_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    kite_distance: float = Field(default=15.0, gt=0)
    retreat_distance: float = Field(default=12.0, gt=0)
    melee_range: float = Field(default=3.0, gt=0)
    max_combat_seconds: float = Field(default=30.0, gt=0)
    ignore_seconds: float = Field(default=10.0, ge=0)
    switch_margin: float = Field(default=0.25, ge=0.0, description="Relative score gain needed to switch")
    min_target_hold_seconds: float = Field(default=2.0, ge=0.0)
    weights: TargetWeightsConfig = Field(default_factory=TargetWeightsConfig)
    boss: BossTacticsConfig = Field(default_factory=BossTacticsConfig)
    abilities: list[AbilityConfig] = Field(default_factory=_default_abilities)

    @model_validator(mode="after")
    def _check_thresholds(self) -> CombatConfig:
        if self.near_death_threshold > self.retreat_threshold:
            raise ValueError("near_death_threshold must not exceed retreat_threshold")
        return self


class NavigationConfig(BaseModel):
    """Navigation engine settings."""

    grid_width: int = Field(default=200, ge=8, le=2000)
    grid_height: int = Field(default=200, ge=8, le=2000)
    grid_resolution: float = Field(default=2.0, gt=0, description="World units per grid cell")
    waypoint_tolerance: float = Field(default=1.0, gt=0)
    max_expanded_nodes: int = Field(default=20000, ge=10)
    max_planning_ms: float = Field(default=20.0, gt=0)
    stuck_threshold: float = Field(default=1.0, ge=0.0, description="Minimum displacement in world units")
    stuck_seconds: float = Field(default=2.0, gt=0)
    max_nudges: int = Field(default=3, ge=0)
    nudge_distance: float = Field(default=4.0, gt=0)
    nudge_hold_seconds: float = Field(default=1.0, gt=0, description="Seconds a nudge is walked before the path resumes")
    max_goal_failures: int = Field(default=3, ge=1)
    explore_mark_radius: float = Field(default=5.0, gt=0)
    reissue_seconds: float = Field(default=1.0, gt=0)
    seed: int | None = Field(default=None, description="Seed for nudge randomization")


class OrchestratorConfig(BaseModel):
    """Top-level activity settings."""

    loot_radius: float = Field(default=10.0, gt=0)
    pickup_range: float = Field(default=2.5, gt=0)
    loot_attempts: int = Field(default=3, ge=1)
    interact_interval_seconds: float = Field(default=0.5, ge=0.0, description="Spacing between pickup attempts")
    seasonal_enabled: bool = Field(default=True)


class LootConfig(BaseModel):
    """Loot filter settings."""

    preset: str = Field(default="balanced", pattern="^(aggressive|safe|balanced|seasonal|boss)$")
    minimum_rarity: str | None = Field(
        default=None,
        pattern="^(normal|magic|rare|legendary|mythic|unique)$",
        description="None keeps the preset's minimum",
    )
    minimum_level: int | None = Field(default=None, ge=0)
    minimum_value: int | None = Field(default=None, ge=0)
    seasonal_items: bool = Field(default=True)
    blacklist: list[str] = Field(default_factory=list)
    priorities: dict[str, int] = Field(default_factory=dict)


class ActionsConfig(BaseModel):
    """Reference executor settings."""

    min_delay_ms: float = Field(default=50.0, ge=0.0)
    max_delay_ms: float = Field(default=200.0, ge=0.0)
    min_interval_ms: float = Field(default=30.0, ge=0.0)
    queue_size: int = Field(default=32, ge=1, le=10000)

    @model_validator(mode="after")
    def _check_delays(self) -> ActionsConfig:
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        return self


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    json_output: bool = Field(default=False)
    file: str | None = Field(default=None)


class Config(BaseModel):
    """Root configuration model."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    world: WorldConfig = Field(default_factory=WorldConfig)
    combat: CombatConfig = Field(default_factory=CombatConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    loot: LootConfig = Field(default_factory=LootConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


ENV_PREFIX = "FARMBOT_"


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``updates`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(raw: str, current: Any) -> Any:
    """Convert an environment string to the type of the value it replaces.

    Lists, mappings and unset values are parsed as YAML, so
    ``FARMBOT_LOOT__BLACKLIST='[Junk, Cursed Ring]'`` works.
    """
    if isinstance(current, bool):
        return raw.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, str):
        return raw
    return yaml.safe_load(raw)


def _apply_env_overrides(
    data: dict[str, Any],
    prefix: str = "",
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Overlay FARMBOT_* environment variables onto config data.

    Double underscores separate nesting levels:
    FARMBOT_NAVIGATION__GRID_RESOLUTION=1.5 sets navigation.grid_resolution.
    Only keys present in ``data`` are looked up, so callers pass data that
    already includes the model defaults.
    """
    environ = os.environ if environ is None else environ
    result = dict(data)

    for key, value in data.items():
        name = f"{prefix}__{key}" if prefix else key
        if isinstance(value, dict) and value:
            result[key] = _apply_env_overrides(value, name, environ)
            continue
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None:
            result[key] = _coerce_env_value(raw, value)
            logger.debug(f"Config override from environment: {name.lower()}")

    return result


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    The file is layered over the model defaults before the environment is
    applied, so every setting can be overridden even when the file omits it.

    Args:
        config_path: Path to YAML config file. If None, uses configs/default.yaml.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config values are invalid.
    """
    if config_path is None:
        project_root = Path(__file__).parent.parent.parent
        config_path = project_root / "configs" / "default.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        file_data = yaml.safe_load(f) or {}

    data = _deep_merge(Config().model_dump(), file_data)
    return Config.model_validate(_apply_env_overrides(data))


def get_default_config() -> Config:
    """Get default configuration without loading from file."""
    return Config()


# Type for config change callbacks
ConfigCallback = Callable[[Config], None]


class ConfigManager:
    """Manages configuration with explicit runtime reconfiguration.

    Engines read their settings once at construction. Changing behaviour at
    runtime goes through ``update``, which validates the merged result and
    notifies subscribers (typically ``Orchestrator.submit_config``).

    Example:
        >>> manager = ConfigManager(load_config())
        >>> manager.subscribe(orchestrator.submit_config)
        >>> manager.update({"combat": {"tactics": "defensive"}})
    """

    def __init__(self, config: Config) -> None:
        """Initialize with a configuration.

        Args:
            config: Initial configuration.
        """
        self._config = config
        self._subscribers: list[ConfigCallback] = []

    @property
    def config(self) -> Config:
        """Get the current configuration."""
        return self._config

    def subscribe(self, callback: ConfigCallback) -> None:
        """Subscribe to configuration changes.

        Args:
            callback: Function to call with new config on changes.
        """
        self._subscribers.append(callback)

    def unsubscribe(self, callback: ConfigCallback) -> None:
        """Unsubscribe from configuration changes.

        Args:
            callback: Previously subscribed callback to remove.
        """
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def update(self, updates: dict[str, Any]) -> Config:
        """Update configuration at runtime.

        Merges updates into current config, validates, and notifies subscribers.

        Args:
            updates: Dictionary of updates. Can be nested.
                Example: {"combat": {"retreat_threshold": 0.4}}

        Returns:
            Updated Config object.

        Raises:
            ValidationError: If updates result in invalid configuration.
        """
        merged = _deep_merge(self._config.model_dump(), updates)
        self._config = Config.model_validate(merged)
        self._notify()
        return self._config

    def reset(self) -> Config:
        """Reset configuration to defaults.

        Returns:
            Default Config object.
        """
        self._config = Config()
        self._notify()
        return self._config

    def _notify(self) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(self._config)
            except Exception as e:
                # A failing subscriber must not block the others
                logger.warning(f"Config subscriber error: {e}")
