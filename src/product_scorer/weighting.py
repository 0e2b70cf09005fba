"""Weight resolution for a category under a selected context."""

import math
from typing import Mapping, Optional

from .config import ContextCombinationConfig
from .errors import ConfigurationError
from .schema import CategoryConfiguration, EvaluationContext

# Weight sets summing to 1 within this tolerance are left untouched
WEIGHT_SUM_TOLERANCE = 1e-9


def normalize_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """Re-normalize weights so they sum to 1.0.

    An already-normalized set is returned unchanged, so normalization is
    idempotent.

    Raises:
        ConfigurationError: If a weight is negative or the total is not positive.
    """
    for key, weight in weights.items():
        if weight < 0 or not math.isfinite(weight):
            raise ConfigurationError(f"weight for '{key}' must be a finite non-negative number")
    total = math.fsum(weights.values())
    if total <= 0:
        raise ConfigurationError("weights sum to zero and cannot be normalized")
    if abs(total - 1.0) <= WEIGHT_SUM_TOLERANCE:
        return dict(weights)
    return {key: weight / total for key, weight in weights.items()}


def combine_profile_weights(
    per_profile: list[float],
    base_weight: float,
    combination: ContextCombinationConfig,
) -> float:
    """Merge one attribute's weights from several selected profiles.

    The strongest requirement wins, so a profile that ignores an attribute
    never dilutes another that depends on it. When two or more profiles
    raise the attribute to at least ``synergy_threshold`` times its base
    weight, the result gets the synergy bonus. The combined weight is
    capped at ``max_weight_factor`` times the base weight.
    """
    combined = max(per_profile)
    if base_weight <= 0:
        return combined
    caring = sum(1 for w in per_profile if w >= base_weight * combination.synergy_threshold)
    if caring >= 2:
        combined *= combination.synergy_multiplier
    return min(combined, base_weight * combination.max_weight_factor)


def effective_weights(
    category: CategoryConfiguration,
    context: EvaluationContext,
    combination: Optional[ContextCombinationConfig] = None,
) -> dict[str, float]:
    """Raw (un-normalized) weight of every scored attribute in a context.

    General use keeps base weights. A single profile applies its overrides
    and multipliers. Several profiles are merged per attribute by
    combine_profile_weights().
    """
    combination = combination or ContextCombinationConfig()
    profiles = [category.get_context(cid) for cid in context.context_ids]
    profiles = [p for p in profiles if p is not None]

    weights = {}
    for attribute in category.scored_attributes():
        if not profiles:
            weights[attribute.id] = attribute.weight
            continue
        per_profile = [p.weight_for(attribute.id, attribute.weight) for p in profiles]
        if len(per_profile) == 1:
            weights[attribute.id] = per_profile[0]
        else:
            weights[attribute.id] = combine_profile_weights(per_profile, attribute.weight, combination)
    return weights


def active_weights(
    category: CategoryConfiguration,
    context: EvaluationContext,
    combination: Optional[ContextCombinationConfig] = None,
) -> dict[str, float]:
    """Normalized weights of the attributes that take part in aggregation.

    Zero-weight attributes are dropped before normalization.

    Raises:
        ConfigurationError: If no attribute carries weight in this context.
    """
    weights = {
        k: w for k, w in effective_weights(category, context, combination).items() if w > 0
    }
    if not weights:
        selection = ", ".join(context.context_ids) or "general use"
        raise ConfigurationError(
            f"no attribute carries weight for contexts ({selection})",
            source=category.category_id,
        )
    return normalize_weights(weights)
