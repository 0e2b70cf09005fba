"""Tests for category file loading, validation and caching."""

from pathlib import Path

import pytest
import yaml

from product_scorer.config import load_config
from product_scorer.errors import ConfigurationError
from product_scorer.loader import (
    CategoryCache,
    bundled_categories_dir,
    list_categories,
    load_category_configuration,
    load_category_file,
    parse_category,
    resolve_categories_dir,
)
from product_scorer.normalizer import NEUTRAL_UTILITY, normalize
from product_scorer.schema import AggregationMode, MissingValueStrategy


def category_data(category_id: str = "kettle", **overrides) -> dict:
    data = {
        "category_id": category_id,
        "name": "Kettle",
        "attributes": [
            {
                "id": "capacity",
                "data_field": "specs.capacity_l",
                "weight": 0.6,
                "normalization": {"kind": "linear", "min": 0.5, "max": 2.0},
            },
            {
                "id": "boil_time",
                "data_field": "specs.boil_seconds",
                "weight": 0.4,
                "direction": "minimize",
                "normalization": {"kind": "sigmoid", "midpoint": 180, "steepness": 0.05},
            },
        ],
    }
    data.update(overrides)
    return data


def write_category(directory: Path, data: dict, suffix: str = ".yaml") -> Path:
    path = directory / f"{data['category_id']}{suffix}"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestBundledCategories:
    """The example categories shipped with the package must stay valid."""

    def test_lists_bundled_categories(self):
        assert list_categories() == ["robot_vacuum", "smart_tv"]

    @pytest.mark.parametrize("category_id", ["smart_tv", "robot_vacuum"])
    def test_bundled_category_loads(self, category_id):
        category = load_category_configuration(category_id)
        assert category.category_id == category_id
        assert category.contexts

    def test_smart_tv_details(self):
        tv = load_category_configuration("smart_tv")
        assert tv.aggregation == AggregationMode.GEOMETRIC
        assert tv.editorial is not None
        assert tv.get_context("gamer_ps5") is not None
        assert ("cinema_dark_room", "cinema_bright_room") in tv.exclusion_groups
        price = tv.get_attribute("price")
        assert price.normalization.kind == "log_normal"

    @pytest.mark.parametrize("category_id", ["smart_tv", "robot_vacuum"])
    def test_impute_penalty_values_sit_below_neutral(self, category_id):
        category = load_category_configuration(category_id)
        for attribute in category.scored_attributes():
            if attribute.missing_value_strategy != MissingValueStrategy.IMPUTE_PENALTY:
                continue
            utility = normalize(attribute.impute_value, attribute.normalization, attribute.direction)
            assert utility < NEUTRAL_UTILITY, attribute.id


class TestDirectoryResolution:
    """Tests for resolve_categories_dir()."""

    def test_explicit_argument_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PRODUCT_SCORER_CATEGORIES_DIR", "/elsewhere")
        assert resolve_categories_dir(tmp_path) == tmp_path

    def test_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PRODUCT_SCORER_CATEGORIES_DIR", str(tmp_path))
        write_category(tmp_path, category_data())
        assert list_categories() == ["kettle"]

    def test_config_file(self, tmp_path):
        categories = tmp_path / "cats"
        categories.mkdir()
        config_file = tmp_path / "scorer-config.yaml"
        config_file.write_text(yaml.safe_dump({"categories_dir": str(categories)}), encoding="utf-8")
        load_config(config_file)
        assert resolve_categories_dir() == categories

    def test_default_is_bundled(self):
        assert resolve_categories_dir() == bundled_categories_dir()


class TestLoadCategory:
    """Tests for loading category files."""

    def test_load_by_id(self, tmp_path):
        write_category(tmp_path, category_data())
        category = load_category_configuration("kettle", tmp_path)
        assert category.display_name == "Kettle"
        assert [a.id for a in category.attributes] == ["capacity", "boil_time"]

    def test_yml_suffix(self, tmp_path):
        write_category(tmp_path, category_data(), suffix=".yml")
        assert load_category_configuration("kettle", tmp_path).category_id == "kettle"

    def test_log_normal_range_is_converted(self, tmp_path):
        data = category_data()
        data["attributes"][0]["normalization"] = {"kind": "log_normal", "low": 100, "high": 10000}
        category = load_category_file(write_category(tmp_path, data))
        assert category.attributes[0].normalization.sigma > 0

    def test_unknown_category(self, tmp_path):
        with pytest.raises(ConfigurationError, match="no configuration for category 'toaster'"):
            load_category_configuration("toaster", tmp_path)

    def test_category_id_must_match_file(self, tmp_path):
        path = write_category(tmp_path, category_data())
        path.rename(tmp_path / "toaster.yaml")
        with pytest.raises(ConfigurationError, match="expected 'toaster'"):
            load_category_configuration("toaster", tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_category_file(tmp_path / "nope.yaml")


class TestValidationFailures:
    """Structural problems surface as ConfigurationError at load time."""

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("category_id: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_category_file(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_category_file(path)

    def test_schema_error_names_source_and_location(self, tmp_path):
        data = category_data()
        data["attributes"][0]["normalization"] = {"kind": "linear", "min": 5, "max": 1}
        path = write_category(tmp_path, data)
        with pytest.raises(ConfigurationError) as exc_info:
            load_category_file(path)
        message = str(exc_info.value)
        assert str(path) in message
        assert "attributes.0.normalization" in message
        assert "max > min" in message

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigurationError, match="colour"):
            parse_category(category_data(colour="red"))

    def test_impute_value_must_normalize(self):
        data = category_data()
        data["attributes"][0]["missing_value_strategy"] = "impute_penalty"
        data["attributes"][0]["impute_value"] = "unknown"
        with pytest.raises(ConfigurationError, match="impute_value 'unknown' of attribute 'capacity'"):
            parse_category(data, source="kettle.yaml")

    def test_dangling_context_reference(self):
        data = category_data(contexts=[{"id": "family", "name": "Family", "weights": {"colour": 1}}])
        with pytest.raises(ConfigurationError, match="weights unknown attributes"):
            parse_category(data)


class TestCategoryCache:
    """Tests for the caller-owned category cache."""

    def test_caches_loaded_category(self, tmp_path):
        write_category(tmp_path, category_data())
        cache = CategoryCache(tmp_path)
        first = cache.get("kettle")
        assert cache.get("kettle") is first
        assert "kettle" in cache
        assert len(cache) == 1

    def test_invalidate_reloads(self, tmp_path):
        write_category(tmp_path, category_data())
        cache = CategoryCache(tmp_path)
        cache.get("kettle")

        write_category(tmp_path, category_data(name="Electric kettle"))
        assert cache.get("kettle").name == "Kettle"
        assert cache.invalidate("kettle") is True
        assert cache.get("kettle").name == "Electric kettle"
        assert cache.invalidate("toaster") is False

    def test_clear(self, tmp_path):
        write_category(tmp_path, category_data())
        cache = CategoryCache(tmp_path)
        cache.get("kettle")
        cache.clear()
        assert len(cache) == 0
