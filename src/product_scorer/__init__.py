"""Contextual multi-criteria product scoring engine."""

__version__ = "1.0.0"

from product_scorer.config import ScorerConfig, get_config, load_config
from product_scorer.engine import (
    ScoringEngine,
    compare_products,
    evaluate,
    list_available_contexts,
    rank_products,
    sweep_contexts,
)
from product_scorer.errors import (
    ConfigurationError,
    MissingRequiredAttributeError,
    MutualExclusionError,
    ScorerError,
    UnknownContextError,
)
from product_scorer.explainer import ScoreExplainer, explain, summarize_ranking
from product_scorer.loader import (
    CategoryCache,
    list_categories,
    load_category_configuration,
    load_category_file,
)
from product_scorer.schema import (
    CategoryConfiguration,
    ContextProfile,
    EvaluationContext,
    EvaluationResult,
    ProductFactSheet,
    RankingResult,
)

__all__ = [
    "__version__",
    "ScorerConfig",
    "get_config",
    "load_config",
    "ScoringEngine",
    "compare_products",
    "evaluate",
    "list_available_contexts",
    "rank_products",
    "sweep_contexts",
    "ConfigurationError",
    "MissingRequiredAttributeError",
    "MutualExclusionError",
    "ScorerError",
    "UnknownContextError",
    "ScoreExplainer",
    "explain",
    "summarize_ranking",
    "CategoryCache",
    "list_categories",
    "load_category_configuration",
    "load_category_file",
    "CategoryConfiguration",
    "ContextProfile",
    "EvaluationContext",
    "EvaluationResult",
    "ProductFactSheet",
    "RankingResult",
]
