"""Centralized configuration management for the product scorer."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class DisplayConfig(BaseModel):
    """How final utilities are presented to callers.

    The engine keeps full precision internally; only the display score is
    scaled and rounded.
    """
    scale: float = Field(
        10.0,
        gt=0,
        description="Upper bound of the public display range (utility 1.0 maps here)"
    )
    decimals: int = Field(
        1,
        ge=0,
        le=6,
        description="Decimal places of the rounded display score"
    )


class ExplanationConfig(BaseModel):
    """Thresholds used when generating score explanations."""
    strength_threshold: float = Field(
        0.7,
        ge=0,
        le=1,
        description="Minimum attribute utility to list as a strength"
    )
    weakness_threshold: float = Field(
        0.4,
        ge=0,
        le=1,
        description="Maximum attribute utility to list as a weakness"
    )
    max_items: int = Field(
        3,
        ge=1,
        description="Maximum strengths/weaknesses/drivers listed per explanation"
    )


class ContextCombinationConfig(BaseModel):
    """How weights are merged when several context profiles are selected.

    Factors are relative to an attribute's base weight.
    """
    synergy_threshold: float = Field(
        1.1,
        gt=0,
        description="Weight factor at which a profile counts as caring about an attribute"
    )
    synergy_multiplier: float = Field(
        1.15,
        ge=1,
        description="Bonus applied when two or more selected profiles care about an attribute"
    )
    max_weight_factor: float = Field(
        4.0,
        gt=0,
        description="Upper bound of a combined weight, as a multiple of the base weight"
    )


class ScorerConfig(BaseModel):
    """Complete configuration for the product scorer."""
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    explanation: ExplanationConfig = Field(default_factory=ExplanationConfig)
    context_combination: ContextCombinationConfig = Field(default_factory=ContextCombinationConfig)
    categories_dir: Optional[str] = Field(
        None,
        description="Directory holding one <category_id>.yaml file per category"
    )


# Global config instance
_config: Optional[ScorerConfig] = None


def get_config() -> ScorerConfig:
    """Get the current configuration.

    Returns the global config, initializing with defaults if not yet loaded.
    Config files are only read by an explicit load_config() call.
    """
    global _config
    if _config is None:
        _config = ScorerConfig()
    return _config


def load_config(path: Path) -> ScorerConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The loaded ScorerConfig.
    """
    global _config

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    _config = ScorerConfig.model_validate(data or {})
    return _config


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = ScorerConfig()


def find_config_file() -> Optional[Path]:
    """Find a scorer configuration file.

    Looks in (order of priority):
    1. PRODUCT_SCORER_CONFIG environment variable
    2. ./scorer-config.yaml
    3. ./scorer-config.yml
    4. ~/.config/product-scorer/config.yaml
    """
    env_path = os.environ.get("PRODUCT_SCORER_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    for name in ["scorer-config.yaml", "scorer-config.yml"]:
        path = Path(name)
        if path.exists():
            return path

    user_config = Path.home() / ".config" / "product-scorer" / "config.yaml"
    if user_config.exists():
        return user_config

    return None


def save_default_config(path: Path) -> None:
    """Save the default configuration to a YAML file.

    Args:
        path: Path where to save the configuration.
    """
    data = ScorerConfig().model_dump()

    yaml_content = """# Product Scorer Configuration
# ============================
#
# Display range, explanation thresholds and the location of the
# per-category scoring files.
#
# Copy this file to one of these locations:
#   - ./scorer-config.yaml (current directory)
#   - ~/.config/product-scorer/config.yaml (user config)
#
# Or set the PRODUCT_SCORER_CONFIG environment variable.

"""
    yaml_content += yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(yaml_content)
