"""Explainer - human-readable explanations of evaluation results.

Turns the auditable breakdown of an EvaluationResult into short statements
(strengths, weaknesses, penalties, disqualifications) and summarizes
rankings. Explanations are derived from the breakdown only; nothing is
recomputed here.
"""

from typing import Optional

from .config import ScorerConfig, get_config
from .schema import (
    AttributeUtility,
    CategoryConfiguration,
    EvaluationResult,
    RankingResult,
    RankingSummary,
    ScoreExplanation,
)


class ScoreExplainer:
    """Generates explanations and summaries for scoring results.

    Principles:
    - Every score must be explainable from its breakdown
    - Imputed values are always disclosed
    - Disqualifications are reported with their reasons, never hidden

    Configuration:
    - Strength/weakness thresholds come from the ``explanation`` section of
      scorer-config.yaml
    """

    def __init__(self, config: Optional[ScorerConfig] = None):
        """Initialize explainer with configuration."""
        config = config or get_config()
        cfg = config.explanation
        self.strength_threshold = cfg.strength_threshold
        self.weakness_threshold = cfg.weakness_threshold
        self.max_items = cfg.max_items
        self.display = config.display

    def explain(
        self,
        result: EvaluationResult,
        category: Optional[CategoryConfiguration] = None,
    ) -> ScoreExplanation:
        """Explain a single evaluation result.

        Args:
            result: Result produced by the scoring engine
            category: Category used for the evaluation, for context names

        Returns:
            Explanation with headline, strengths, weaknesses and penalties
        """
        context_label = self._context_label(result, category)

        if result.is_fatally_constrained:
            return ScoreExplanation(
                product_id=result.product_id,
                headline=f"Not suitable for {context_label}",
                disqualifications=[r.reason for r in result.fatal_reasons],
            )

        ranked = sorted(result.breakdown, key=lambda b: (-b.weight, b.attribute_id))
        strengths = [
            self._describe(b) for b in ranked
            if not b.imputed and b.utility >= self.strength_threshold
        ]
        weaknesses = [
            self._describe(b) for b in ranked
            if not b.imputed and b.utility <= self.weakness_threshold
        ]
        penalties = [
            f"{p.reason} (x{p.multiplier:g})" for p in result.applied_penalties
        ]
        imputed = [b.label for b in result.breakdown if b.imputed]

        return ScoreExplanation(
            product_id=result.product_id,
            headline=(
                f"Scores {self._format_score(result.score)}/{self.display.scale:g} "
                f"for {context_label}"
            ),
            strengths=strengths[:self.max_items],
            weaknesses=weaknesses[:self.max_items],
            penalties=penalties,
            imputed=imputed,
        )

    def summarize_ranking(self, ranking: RankingResult) -> RankingSummary:
        """Summarize a ranking for display.

        Key drivers are the heaviest attributes where the top pick does well.
        """
        exclusion_reasons = {
            entry.product.product_id: [r.reason for r in entry.result.fatal_reasons]
            for entry in ranking.excluded
        }
        summary = RankingSummary(
            category_id=ranking.category_id,
            context_ids=ranking.context_ids,
            ranked_count=len(ranking.ranked),
            excluded_count=len(ranking.excluded),
            unscorable_count=len(ranking.unscorable),
            exclusion_reasons=exclusion_reasons,
        )
        if not ranking.ranked:
            summary.key_drivers = ["No product qualifies for this context"]
            return summary

        top = ranking.ranked[0]
        summary.top_pick = top.product.name or top.product.product_id
        summary.top_pick_score = top.result.score

        drivers = sorted(top.result.breakdown, key=lambda b: (-b.weight, b.attribute_id))
        summary.key_drivers = [
            self._describe(b) for b in drivers
            if not b.imputed and b.utility >= self.strength_threshold
        ][:self.max_items]

        # Close race with the runner-up
        if len(ranking.ranked) > 1:
            runner_up = ranking.ranked[1]
            if runner_up.result.score == top.result.score:
                summary.key_drivers.append(
                    f"Tied display score with {runner_up.product.name or runner_up.product.product_id}"
                )
        return summary

    def _describe(self, item: AttributeUtility) -> str:
        return f"{item.label}: {self._format_raw(item.raw_value)} (utility {item.utility:.2f})"

    def _format_raw(self, value) -> str:
        if isinstance(value, bool):
            return "yes" if value else "no"
        if isinstance(value, float):
            return f"{value:g}"
        return str(value)

    def _format_score(self, score: Optional[float]) -> str:
        if score is None:
            return "-"
        return f"{score:.{self.display.decimals}f}"

    def _context_label(
        self,
        result: EvaluationResult,
        category: Optional[CategoryConfiguration],
    ) -> str:
        if not result.context_ids:
            return "general use"
        names = []
        for cid in result.context_ids:
            profile = category.get_context(cid) if category is not None else None
            names.append(profile.name if profile is not None else cid)
        return " + ".join(names)


def explain(
    result: EvaluationResult,
    category: Optional[CategoryConfiguration] = None,
    config: Optional[ScorerConfig] = None,
) -> ScoreExplanation:
    """Explain one evaluation (see ScoreExplainer.explain)."""
    return ScoreExplainer(config).explain(result, category)


def summarize_ranking(
    ranking: RankingResult,
    config: Optional[ScorerConfig] = None,
) -> RankingSummary:
    """Summarize a ranking (see ScoreExplainer.summarize_ranking)."""
    return ScoreExplainer(config).summarize_ranking(ranking)
