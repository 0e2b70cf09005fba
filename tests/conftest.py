"""Shared fixtures and category builders for the product scorer tests."""

from typing import Any

import pytest

from product_scorer.config import ScorerConfig, reset_config
from product_scorer.schema import CategoryConfiguration


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path_factory):
    """Keep every test independent of config files on the host machine."""
    monkeypatch.setenv("HOME", str(tmp_path_factory.mktemp("home")))
    monkeypatch.delenv("PRODUCT_SCORER_CONFIG", raising=False)
    monkeypatch.delenv("PRODUCT_SCORER_CATEGORIES_DIR", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def scorer_config() -> ScorerConfig:
    return ScorerConfig()


def linear_attribute(attribute_id: str, weight: float, **overrides) -> dict[str, Any]:
    """Attribute dict with a 0-100 linear curve reading ``facts.<id>``."""
    attribute = {
        "id": attribute_id,
        "data_field": attribute_id,
        "weight": weight,
        "normalization": {"kind": "linear", "min": 0, "max": 100},
    }
    attribute.update(overrides)
    return attribute


def make_category(**overrides) -> CategoryConfiguration:
    """Two-attribute category; keyword arguments replace top-level keys."""
    data = {
        "category_id": "widget",
        "name": "Widget",
        "aggregation": "geometric",
        "attributes": [
            linear_attribute("quality", 0.5),
            linear_attribute("durability", 0.5),
        ],
    }
    data.update(overrides)
    return CategoryConfiguration.model_validate(data)


def product(product_id: str, **facts) -> dict[str, Any]:
    """Fact sheet dict with flat facts."""
    return {"product_id": product_id, "facts": facts}


TV_PRODUCTS = [
    {
        "product_id": "tv-oled-g4",
        "name": "Cinema King G4 OLED",
        "base_score": 9.1,
        "facts": {
            "price": 12000,
            "specs": {
                "peak_brightness_nits": 1500,
                "contrast_ratio": 1500000,
                "color_gamut_dci_p3": 99,
                "input_lag_ms": 9.2,
                "refresh_rate_hz": 144,
                "vrr_support": True,
                "hdmi_2_1_ports": 4,
                "speaker_power_watts": 60,
                "warranty_years": 2,
                "voltage": "bivolt",
            },
        },
    },
    {
        "product_id": "tv-budget-43",
        "name": "Budget 43",
        "base_score": 6.2,
        "facts": {
            "price": 1800,
            "specs": {
                "peak_brightness_nits": 280,
                "contrast_ratio": 1200,
                "color_gamut_dci_p3": 78,
                "input_lag_ms": 35,
                "refresh_rate_hz": 60,
                "vrr_support": False,
                "hdmi_2_1_ports": 0,
                "speaker_power_watts": 20,
                "warranty_years": 1,
                "voltage": 220,
            },
        },
    },
    {
        "product_id": "tv-qled-55",
        "name": "QLED 55",
        "base_score": 7.8,
        "facts": {
            "price": 4200,
            "specs": {
                "peak_brightness_nits": 700,
                "contrast_ratio": 5000,
                "color_gamut_dci_p3": 92,
                "input_lag_ms": 14,
                "refresh_rate_hz": 120,
                "vrr_support": True,
                "hdmi_2_1_ports": 2,
                "speaker_power_watts": 20,
                "warranty_years": 1,
                "voltage": "bivolt",
            },
        },
    },
]
