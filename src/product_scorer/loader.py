"""Category configuration loading and validation.

Reads one YAML file per product category and validates it into a frozen
CategoryConfiguration. Every structural problem surfaces here, at load
time, as a ConfigurationError:

- YAML syntax errors and non-mapping documents
- Schema violations (bad curve parameters, unknown keys, bad weights)
- Duplicate ids and dangling references between contexts and constraints
- impute_penalty values that the attribute's curve cannot normalize
"""

import logging
import os
import threading
from importlib import resources
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from .config import get_config
from .errors import ConfigurationError
from .normalizer import normalize
from .schema import CategoryConfiguration, MissingValueStrategy

logger = logging.getLogger(__name__)

CATEGORIES_DIR_ENV = "PRODUCT_SCORER_CATEGORIES_DIR"
CATEGORY_SUFFIXES = (".yaml", ".yml")

PathLike = Union[str, Path]


def bundled_categories_dir() -> Path:
    """Directory of the example categories shipped with the package."""
    return Path(str(resources.files("product_scorer") / "categories"))


def resolve_categories_dir(categories_dir: Optional[PathLike] = None) -> Path:
    """Pick the directory category files are read from.

    Order of priority:
    1. The explicit argument
    2. PRODUCT_SCORER_CATEGORIES_DIR environment variable
    3. ``categories_dir`` from the scorer configuration
    4. The bundled example categories
    """
    if categories_dir is not None:
        return Path(categories_dir)
    env_dir = os.environ.get(CATEGORIES_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    configured = get_config().categories_dir
    if configured:
        return Path(configured)
    return bundled_categories_dir()


def _format_validation_error(error: ValidationError) -> str:
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        issues.append(f"{location}: {item['msg']}")
    return "; ".join(issues)


def _check_impute_values(category: CategoryConfiguration, source: str) -> None:
    for attribute in category.scored_attributes():
        if attribute.missing_value_strategy != MissingValueStrategy.IMPUTE_PENALTY:
            continue
        if normalize(attribute.impute_value, attribute.normalization, attribute.direction) is None:
            raise ConfigurationError(
                f"impute_value {attribute.impute_value!r} of attribute '{attribute.id}' "
                f"cannot be normalized by its {attribute.normalization.kind} curve",
                source=source,
            )


def parse_category(data: Any, source: str = "<memory>") -> CategoryConfiguration:
    """Validate already-parsed category data.

    Args:
        data: Mapping as produced by ``yaml.safe_load``
        source: Label used in error messages (usually the file path)

    Raises:
        ConfigurationError: If the data does not describe a valid category.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("category file must contain a mapping", source=source)
    try:
        category = CategoryConfiguration.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e), source=source) from e
    _check_impute_values(category, source)
    return category


def load_category_file(path: PathLike) -> CategoryConfiguration:
    """Load and validate a single category YAML file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"category file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML: {e}", source=str(path)) from e

    category = parse_category(data, source=str(path))
    logger.info(
        "Loaded category %s v%s from %s (%d attributes, %d contexts)",
        category.category_id, category.version, path,
        len(category.attributes), len(category.contexts),
    )
    return category


def _category_path(category_id: str, directory: Path) -> Optional[Path]:
    for suffix in CATEGORY_SUFFIXES:
        candidate = directory / f"{category_id}{suffix}"
        if candidate.is_file():
            return candidate
    return None


def load_category_configuration(
    category_id: str,
    categories_dir: Optional[PathLike] = None,
) -> CategoryConfiguration:
    """Load the configuration of one category by id.

    Reads ``<categories_dir>/<category_id>.yaml`` (or ``.yml``).

    Raises:
        ConfigurationError: If the category is unknown or its file is invalid,
            or if the file declares a different category_id.
    """
    directory = resolve_categories_dir(categories_dir)
    path = _category_path(category_id, directory)
    if path is None:
        raise ConfigurationError(f"no configuration for category '{category_id}' in {directory}")

    category = load_category_file(path)
    if category.category_id != category_id:
        raise ConfigurationError(
            f"file declares category_id '{category.category_id}', expected '{category_id}'",
            source=str(path),
        )
    return category


def list_categories(categories_dir: Optional[PathLike] = None) -> list[str]:
    """Category ids available in a directory, sorted."""
    directory = resolve_categories_dir(categories_dir)
    if not directory.is_dir():
        return []
    ids = {
        path.stem
        for path in directory.iterdir()
        if path.is_file() and path.suffix in CATEGORY_SUFFIXES
    }
    return sorted(ids)


class CategoryCache:
    """Caller-owned cache of loaded category configurations.

    Loaded configurations are immutable, so cached instances can be shared
    between threads. The lock only guards the cache dictionary.
    """

    def __init__(self, categories_dir: Optional[PathLike] = None):
        self.categories_dir = categories_dir
        self._lock = threading.Lock()
        self._entries: dict[str, CategoryConfiguration] = {}

    def get(self, category_id: str) -> CategoryConfiguration:
        """Return the cached configuration, loading it on first use."""
        with self._lock:
            category = self._entries.get(category_id)
            if category is None:
                category = load_category_configuration(category_id, self.categories_dir)
                self._entries[category_id] = category
            return category

    def invalidate(self, category_id: str) -> bool:
        """Drop one category so the next get() reloads it from disk."""
        with self._lock:
            return self._entries.pop(category_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, category_id: str) -> bool:
        with self._lock:
            return category_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
