"""Scoring Engine - public entry point of the product scorer.

Resolves the selected context, evaluates products with the ProductScorer
and produces deterministic rankings, comparisons and context sweeps.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .config import ScorerConfig, get_config
from .constraints import ContextSelection, resolve_context
from .errors import MissingRequiredAttributeError
from .schema import (
    AttributeComparison,
    CategoryConfiguration,
    ContextProfile,
    ContextSweep,
    EvaluationResult,
    ExcludedEntry,
    ProductComparison,
    ProductFactSheet,
    RankedEntry,
    RankingResult,
    UnscorableEntry,
)
from .scorer import ProductScorer

logger = logging.getLogger(__name__)

ProductInput = Union[ProductFactSheet, Mapping[str, Any]]


def as_fact_sheet(product: ProductInput) -> ProductFactSheet:
    """Accept either a fact sheet or a plain mapping."""
    if isinstance(product, ProductFactSheet):
        return product
    return ProductFactSheet.model_validate(product)


class ScoringEngine:
    """Evaluates and ranks products of one category.

    The engine holds only immutable state (the category and settings), so a
    single instance can serve concurrent callers.
    """

    def __init__(self, category: CategoryConfiguration, config: Optional[ScorerConfig] = None):
        self.category = category
        self.config = config or get_config()
        self.scorer = ProductScorer(self.config)

    def list_contexts(self) -> tuple[ContextProfile, ...]:
        """Context profiles available for this category."""
        return self.category.contexts

    def evaluate(
        self,
        product: ProductInput,
        context_id: ContextSelection = None,
        user_facts: Optional[Mapping[str, Any]] = None,
    ) -> EvaluationResult:
        """Evaluate one product.

        Raises:
            UnknownContextError: If a selected context does not exist.
            MutualExclusionError: If the selected contexts conflict.
            MissingRequiredAttributeError: If a required attribute is missing.
        """
        context = resolve_context(self.category, context_id, user_facts)
        return self.scorer.evaluate(as_fact_sheet(product), self.category, context)

    def rank(
        self,
        products: Iterable[ProductInput],
        context_id: ContextSelection = None,
        user_facts: Optional[Mapping[str, Any]] = None,
    ) -> RankingResult:
        """Rank products, separating disqualified and unscorable ones.

        Order: display score, then full-precision utility (both descending),
        then product id, then input position. Identical inputs always give
        identical output.
        """
        context = resolve_context(self.category, context_id, user_facts)
        sheets = [as_fact_sheet(p) for p in products]

        scored: list[tuple[int, ProductFactSheet, EvaluationResult]] = []
        excluded: list[ExcludedEntry] = []
        unscorable: list[UnscorableEntry] = []

        for position, sheet in enumerate(sheets):
            try:
                result = self.scorer.evaluate(sheet, self.category, context)
            except MissingRequiredAttributeError as e:
                logger.debug("Product %s is unscorable: %s", sheet.product_id, e)
                unscorable.append(UnscorableEntry(
                    product=sheet,
                    attribute_id=e.attribute_id,
                    message=str(e),
                ))
                continue

            if result.is_fatally_constrained:
                logger.debug(
                    "Product %s excluded by %s",
                    sheet.product_id, [r.constraint_id for r in result.fatal_reasons],
                )
                excluded.append(ExcludedEntry(product=sheet, result=result))
            else:
                scored.append((position, sheet, result))

        scored.sort(key=lambda item: (
            -item[2].score,
            -item[2].utility,
            item[1].product_id,
            item[0],
        ))
        ranked = [
            RankedEntry(rank=i + 1, product=sheet, result=result)
            for i, (_, sheet, result) in enumerate(scored)
        ]

        logger.debug(
            "Ranked %d products in %s (%d excluded, %d unscorable)",
            len(ranked), self.category.category_id, len(excluded), len(unscorable),
        )
        return RankingResult(
            category_id=self.category.category_id,
            context_ids=context.context_ids,
            ranked=ranked,
            excluded=excluded,
            unscorable=unscorable,
        )

    def compare(
        self,
        product_a: ProductInput,
        product_b: ProductInput,
        context_id: ContextSelection = None,
        user_facts: Optional[Mapping[str, Any]] = None,
    ) -> ProductComparison:
        """Compare two products head to head in the same context.

        A disqualified product loses to a scored one; two disqualified
        products have no winner.
        """
        context = resolve_context(self.category, context_id, user_facts)
        sheet_a, sheet_b = as_fact_sheet(product_a), as_fact_sheet(product_b)
        result_a = self.scorer.evaluate(sheet_a, self.category, context)
        result_b = self.scorer.evaluate(sheet_b, self.category, context)

        winner = None
        difference = None
        if result_a.utility is not None and result_b.utility is not None:
            difference = round(result_a.score - result_b.score, self.config.display.decimals)
            if result_a.utility > result_b.utility:
                winner = sheet_a.product_id
            elif result_b.utility > result_a.utility:
                winner = sheet_b.product_id
        elif result_a.utility is not None:
            winner = sheet_a.product_id
        elif result_b.utility is not None:
            winner = sheet_b.product_id

        attributes = []
        for attribute in self.category.scored_attributes():
            utility_a = result_a.per_attribute_utility.get(attribute.id)
            utility_b = result_b.per_attribute_utility.get(attribute.id)
            if utility_a is None and utility_b is None:
                continue
            attribute_winner = None
            if utility_a is not None and utility_b is not None and utility_a != utility_b:
                attribute_winner = sheet_a.product_id if utility_a > utility_b else sheet_b.product_id
            attributes.append(AttributeComparison(
                attribute_id=attribute.id,
                label=attribute.display_label,
                utility_a=utility_a,
                utility_b=utility_b,
                winner=attribute_winner,
            ))

        return ProductComparison(
            category_id=self.category.category_id,
            context_ids=context.context_ids,
            result_a=result_a,
            result_b=result_b,
            winner=winner,
            score_difference=difference,
            attributes=attributes,
        )

    def sweep_contexts(
        self,
        product: ProductInput,
        user_facts: Optional[Mapping[str, Any]] = None,
    ) -> ContextSweep:
        """Evaluate a product under general use and each context profile.

        Best and worst contexts are chosen among non-disqualified results;
        general use is reported as an empty string.
        """
        sheet = as_fact_sheet(product)
        selections: list[Optional[str]] = [None] + [p.id for p in self.category.contexts]

        results = []
        for selection in selections:
            context = resolve_context(self.category, selection, user_facts)
            results.append(self.scorer.evaluate(sheet, self.category, context))

        scored = [r for r in results if r.utility is not None]
        best = worst = None
        if scored:
            # max/min keep the first of equal results, i.e. declaration order
            best = ",".join(max(scored, key=lambda r: r.utility).context_ids)
            worst = ",".join(min(scored, key=lambda r: r.utility).context_ids)

        return ContextSweep(
            product_id=sheet.product_id,
            results=results,
            best_context=best,
            worst_context=worst,
        )


# =============================================================================
# Module-level API
# =============================================================================


def evaluate(
    product: ProductInput,
    category: CategoryConfiguration,
    context_id: ContextSelection = None,
    user_facts: Optional[Mapping[str, Any]] = None,
    config: Optional[ScorerConfig] = None,
) -> EvaluationResult:
    """Evaluate a single product (see ScoringEngine.evaluate)."""
    return ScoringEngine(category, config).evaluate(product, context_id, user_facts)


def rank_products(
    products: Sequence[ProductInput],
    category: CategoryConfiguration,
    context_id: ContextSelection = None,
    user_facts: Optional[Mapping[str, Any]] = None,
    config: Optional[ScorerConfig] = None,
) -> RankingResult:
    """Rank products of one category (see ScoringEngine.rank)."""
    return ScoringEngine(category, config).rank(products, context_id, user_facts)


def compare_products(
    product_a: ProductInput,
    product_b: ProductInput,
    category: CategoryConfiguration,
    context_id: ContextSelection = None,
    user_facts: Optional[Mapping[str, Any]] = None,
    config: Optional[ScorerConfig] = None,
) -> ProductComparison:
    """Compare two products (see ScoringEngine.compare)."""
    return ScoringEngine(category, config).compare(product_a, product_b, context_id, user_facts)


def sweep_contexts(
    product: ProductInput,
    category: CategoryConfiguration,
    user_facts: Optional[Mapping[str, Any]] = None,
    config: Optional[ScorerConfig] = None,
) -> ContextSweep:
    """Evaluate a product in every context (see ScoringEngine.sweep_contexts)."""
    return ScoringEngine(category, config).sweep_contexts(product, user_facts)


def list_available_contexts(category: CategoryConfiguration) -> tuple[ContextProfile, ...]:
    """Context profiles a UI can offer for this category."""
    return category.contexts
