"""Exception types raised by the product scoring engine."""

from typing import Optional


class ScorerError(Exception):
    """Base class for all scoring engine errors."""


class ConfigurationError(ScorerError):
    """Raised when a category or context definition is structurally invalid.

    Configuration errors are authoring bugs: they surface at load time and
    make the category unusable rather than degrading individual scores.
    """

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class MissingRequiredAttributeError(ScorerError):
    """Raised when a product lacks a value for a ``fail`` strategy attribute."""

    def __init__(self, product_id: str, attribute_id: str, data_field: str):
        self.product_id = product_id
        self.attribute_id = attribute_id
        self.data_field = data_field
        super().__init__(
            f"Product '{product_id}' is missing required attribute "
            f"'{attribute_id}' (field '{data_field}')"
        )


class MutualExclusionError(ScorerError):
    """Raised when two mutually exclusive contexts are selected together."""

    def __init__(self, first: str, second: str):
        self.context_ids = (first, second)
        super().__init__(
            f"Contexts '{first}' and '{second}' are mutually exclusive "
            "and cannot be selected together"
        )


class UnknownContextError(ScorerError):
    """Raised when a caller selects a context the category does not define."""

    def __init__(self, category_id: str, context_id: str):
        self.category_id = category_id
        self.context_id = context_id
        super().__init__(
            f"Category '{category_id}' has no context profile '{context_id}'"
        )
