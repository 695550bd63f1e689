"""Configuration management for buildspace.

Three config groups:
- repair: bounds on the repair engine
- generation: process-pool settings for row repair
- defaults: CLI defaults (budget, output path)

Config resolution order (highest priority first):
1. Programmatic (BuildspaceConfig constructed in code)
2. Environment variables (BUILDSPACE_MAX_GATE_SWAPS, BUILDSPACE_BUDGET, etc.)
3. Config file (~/.config/buildspace/config.json, managed by `buildspace config`)
4. Hardcoded defaults
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


# =============================================================================
# Config file location
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "buildspace"
CONFIG_FILE = CONFIG_DIR / "config.json"


# =============================================================================
# Config dataclasses
# =============================================================================


@dataclass
class RepairConfig:
    """Repair engine bounds."""

    max_gate_swaps: int = 10


@dataclass
class GenerationConfig:
    """Row repair parallelism.

    Rows are repaired in a process pool only when max_workers > 1 and the
    design has at least parallel_min_rows rows.
    """

    max_workers: int = 1
    parallel_min_rows: int = 64


@dataclass
class DefaultsConfig:
    """CLI default settings."""

    budget: int | None = None  # None = use the budget in the graph file
    output_path: str = "./builds.json"


# =============================================================================
# Main config class
# =============================================================================


@dataclass
class BuildspaceConfig:
    """Top-level buildspace configuration.

    Examples:
        # Package use, no files needed
        config = BuildspaceConfig(generation=GenerationConfig(max_workers=4))

        # CLI use, loads from ~/.config/buildspace/config.json
        config = BuildspaceConfig.load()
    """

    repair: RepairConfig = field(default_factory=RepairConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)

    @classmethod
    def load(cls) -> "BuildspaceConfig":
        """Load config from file + env vars.

        Priority: env var values > config.json values > defaults.
        """
        config = cls()

        # Layer 1: config file
        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = json.load(f)
                _apply_dict(config, data)
            except (json.JSONDecodeError, OSError, TypeError, ValueError) as exc:
                logger.warning("Failed to load config from %s: %s", CONFIG_FILE, exc)

        # Layer 2: env var overrides
        _apply_int_env(config.repair, "max_gate_swaps", "BUILDSPACE_MAX_GATE_SWAPS")
        _apply_int_env(config.generation, "max_workers", "BUILDSPACE_MAX_WORKERS")
        _apply_int_env(
            config.generation, "parallel_min_rows", "BUILDSPACE_PARALLEL_MIN_ROWS"
        )
        _apply_int_env(config.defaults, "budget", "BUILDSPACE_BUDGET")
        if val := os.environ.get("BUILDSPACE_OUTPUT_PATH"):
            config.defaults.output_path = val

        return config

    def save(self) -> None:
        """Save config to ~/.config/buildspace/config.json."""
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for display."""
        return {
            "repair": asdict(self.repair),
            "generation": asdict(self.generation),
            "defaults": asdict(self.defaults),
        }

    def set_value(self, key: str, value: str) -> None:
        """Set a dotted key such as "repair.max_gate_swaps" from a string.

        Raises:
            KeyError: Unknown section or field
            ValueError: Value does not parse as the field's type
        """
        section_name, _, field_name = key.partition(".")
        section = getattr(self, section_name, None)
        if section is None or section_name not in _SECTIONS or not field_name:
            raise KeyError(key)
        if field_name not in {f.name for f in fields(section)}:
            raise KeyError(key)
        setattr(section, field_name, _coerce(section, field_name, value))


_SECTIONS = ("repair", "generation", "defaults")

# Fields that parse as int; budget also accepts "none"
_INT_FIELDS = {"max_gate_swaps", "max_workers", "parallel_min_rows", "budget"}


def _coerce(section: Any, field_name: str, value: Any) -> Any:
    if field_name not in _INT_FIELDS:
        return str(value)
    if field_name == "budget" and (value is None or str(value).lower() == "none"):
        return None
    return int(value)


def _apply_int_env(section: Any, field_name: str, env_var: str) -> None:
    if val := os.environ.get(env_var):
        try:
            setattr(section, field_name, int(val))
        except ValueError:
            logger.warning("Invalid %s=%r, ignoring", env_var, val)


def _apply_dict(config: BuildspaceConfig, data: dict) -> None:
    """Apply a dict of values onto a BuildspaceConfig."""
    for section_name in _SECTIONS:
        values = data.get(section_name)
        if not isinstance(values, dict):
            continue
        section = getattr(config, section_name)
        for k, v in values.items():
            if hasattr(section, k):
                setattr(section, k, _coerce(section, k, v))


# =============================================================================
# Global config accessor
# =============================================================================

_config: BuildspaceConfig | None = None


def get_config() -> BuildspaceConfig:
    """Get the global BuildspaceConfig instance.

    First call loads from file + env vars. Subsequent calls return cached instance.
    Use configure() to replace the global config programmatically.
    """
    global _config
    if _config is None:
        _config = BuildspaceConfig.load()
    return _config


def configure(config: BuildspaceConfig) -> None:
    """Set the global BuildspaceConfig programmatically.

    Use this when buildspace is used as a package:
        from buildspace.config import configure, BuildspaceConfig, RepairConfig
        configure(BuildspaceConfig(repair=RepairConfig(max_gate_swaps=4)))
    """
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global config (forces reload on next get_config())."""
    global _config
    _config = None
