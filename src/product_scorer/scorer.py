"""Scorer - stage 4 of the scoring engine.

Normalizes each attribute of a product, aggregates the utilities with the
category's aggregation mode, applies soft-constraint penalties and maps the
result onto the public display range.
"""

import logging
import math
from typing import Any, Mapping, Optional

from .config import ScorerConfig, get_config
from .constraints import ConstraintEvaluator, combined_multiplier
from .errors import ConfigurationError, MissingRequiredAttributeError
from .normalizer import NEUTRAL_UTILITY, clamp_unit, normalize
from .schema import (
    EDITORIAL_ATTRIBUTE_ID,
    AggregationMode,
    AttributeDefinition,
    AttributeUtility,
    CategoryConfiguration,
    EvaluationContext,
    EvaluationResult,
    MissingValueStrategy,
    ProductFactSheet,
)
from .weighting import active_weights

logger = logging.getLogger(__name__)

# Utilities are floored here before geometric aggregation, otherwise a
# single zero utility would zero the whole score regardless of its weight.
GEOMETRIC_UTILITY_FLOOR = 1e-4


def aggregate(
    utilities: Mapping[str, float],
    weights: Mapping[str, float],
    mode: AggregationMode,
) -> float:
    """Combine utilities with normalized weights.

    Geometric mode is the weighted product ``Π u_i^w_i`` computed in log
    space: one weak attribute suppresses the aggregate multiplicatively and
    strong attributes cannot compensate for it. Arithmetic mode is the plain
    weighted sum.
    """
    if mode == AggregationMode.GEOMETRIC:
        log_sum = math.fsum(
            weights[key] * math.log(max(utilities[key], GEOMETRIC_UTILITY_FLOOR))
            for key in weights
        )
        return clamp_unit(math.exp(log_sum))
    return clamp_unit(math.fsum(utilities[key] * weights[key] for key in weights))


def contribution(utility: float, weight: float, mode: AggregationMode) -> float:
    """Share of one attribute in the aggregate, for the audit breakdown."""
    if mode == AggregationMode.GEOMETRIC:
        return max(utility, GEOMETRIC_UTILITY_FLOOR) ** weight
    return utility * weight


class ProductScorer:
    """Scores a single product against a category configuration.

    Scoring principles:
    - Hard constraints are checked first; a disqualified product gets no score
    - Missing values follow each attribute's explicit strategy, never a
      silent weight redistribution
    - Soft penalties compound multiplicatively
    - Full precision is kept for ranking; only the display score is rounded
    """

    def __init__(self, config: Optional[ScorerConfig] = None):
        """Initialize scorer with optional custom configuration."""
        self.config = config or get_config()

    def evaluate(
        self,
        product: ProductFactSheet,
        category: CategoryConfiguration,
        context: EvaluationContext,
    ) -> EvaluationResult:
        """Evaluate one product in one context.

        Raises:
            MissingRequiredAttributeError: If a ``fail`` attribute has no value.
        """
        weights = active_weights(category, context, self.config.context_combination)
        evaluator = ConstraintEvaluator(category)

        fatal_reasons = evaluator.fatal_reasons(product.facts, context)
        if fatal_reasons:
            return EvaluationResult(
                product_id=product.product_id,
                category_id=category.category_id,
                context_ids=context.context_ids,
                aggregation=category.aggregation,
                is_fatally_constrained=True,
                fatal_reasons=fatal_reasons,
            )

        mode = category.aggregation
        utilities: dict[str, float] = {}
        breakdown: list[AttributeUtility] = []
        imputed: list[str] = []

        for attribute in category.scored_attributes():
            if attribute.id not in weights:
                continue
            raw_value, utility, was_imputed = self.attribute_utility(product, attribute)
            utilities[attribute.id] = utility
            if was_imputed:
                imputed.append(attribute.id)
            breakdown.append(AttributeUtility(
                attribute_id=attribute.id,
                label=attribute.display_label,
                raw_value=raw_value,
                utility=utility,
                weight=weights[attribute.id],
                contribution=contribution(utility, weights[attribute.id], mode),
                imputed=was_imputed,
            ))

        base_utility = aggregate(utilities, weights, mode)
        penalties = evaluator.penalties(product.facts, context)
        penalty_factor = combined_multiplier(penalties)
        final_utility = clamp_unit(base_utility * penalty_factor)

        return EvaluationResult(
            product_id=product.product_id,
            category_id=category.category_id,
            context_ids=context.context_ids,
            aggregation=mode,
            score=self.display_score(final_utility),
            utility=final_utility,
            base_utility=base_utility,
            penalty_factor=penalty_factor,
            per_attribute_utility=utilities,
            breakdown=breakdown,
            applied_penalties=penalties,
            imputed_attributes=imputed,
        )

    def attribute_utility(
        self,
        product: ProductFactSheet,
        attribute: AttributeDefinition,
    ) -> tuple[Any, float, bool]:
        """Normalize one attribute, applying the missing value strategy.

        Returns:
            Tuple of (raw_value, utility, imputed)
        """
        if attribute.id == EDITORIAL_ATTRIBUTE_ID:
            raw_value = product.base_score
        else:
            raw_value = product.lookup(attribute.data_field)

        if raw_value is not None and not (isinstance(raw_value, str) and not raw_value.strip()):
            utility = normalize(raw_value, attribute.normalization, attribute.direction)
            if utility is not None:
                return raw_value, utility, False
            logger.warning(
                "Product %s: cannot interpret %r for attribute %s; treating as missing",
                product.product_id, raw_value, attribute.id,
            )

        strategy = attribute.missing_value_strategy
        if strategy == MissingValueStrategy.FAIL:
            raise MissingRequiredAttributeError(product.product_id, attribute.id, attribute.data_field)
        if strategy == MissingValueStrategy.IMPUTE_NEUTRAL:
            return None, NEUTRAL_UTILITY, True

        utility = normalize(attribute.impute_value, attribute.normalization, attribute.direction)
        if utility is None:
            raise ConfigurationError(
                f"impute_value {attribute.impute_value!r} of attribute '{attribute.id}' "
                "cannot be normalized"
            )
        return attribute.impute_value, utility, True

    def display_score(self, utility: float) -> float:
        """Map a 0-1 utility onto the rounded display range."""
        display = self.config.display
        return round(utility * display.scale, display.decimals)
