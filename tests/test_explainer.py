"""Tests for score explanations and ranking summaries."""

import pytest

from conftest import make_category, product
from product_scorer.config import ExplanationConfig, ScorerConfig
from product_scorer.engine import ScoringEngine
from product_scorer.explainer import ScoreExplainer, explain, summarize_ranking


@pytest.fixture
def category():
    return make_category(
        contexts=[{"id": "gaming", "name": "Gaming"}],
        hard_constraints=[{
            "id": "no_game_mode",
            "reason": "No game mode",
            "contexts": ["gaming"],
            "when": {"fact": "game_mode", "op": "is_false"},
        }],
        soft_constraints=[{
            "id": "slow",
            "reason": "Slow panel",
            "penalty_multiplier": 0.8,
            "when": {"fact": "response_ms", "op": "gt", "value": 10},
        }],
    )


@pytest.fixture
def engine(category):
    return ScoringEngine(category, ScorerConfig())


class TestExplain:
    """Tests for ScoreExplainer.explain()."""

    def test_strengths_and_weaknesses(self, engine, category):
        result = engine.evaluate(product("p", quality=90, durability=20))
        explanation = explain(result, category, ScorerConfig())
        assert explanation.headline == "Scores 4.2/10 for general use"
        assert explanation.strengths == ["Quality: 90 (utility 0.90)"]
        assert explanation.weaknesses == ["Durability: 20 (utility 0.20)"]
        assert explanation.penalties == []

    def test_penalties_and_imputed(self, engine, category):
        result = engine.evaluate(product("p", quality=80, response_ms=16))
        explanation = explain(result, category, ScorerConfig())
        assert explanation.penalties == ["Slow panel (x0.8)"]
        assert explanation.imputed == ["Durability"]
        # Imputed values are never presented as strengths or weaknesses
        assert all("Durability" not in item for item in explanation.weaknesses)

    def test_disqualification(self, engine, category):
        result = engine.evaluate(product("p", quality=90, durability=90, game_mode=False), "gaming")
        explanation = explain(result, category, ScorerConfig())
        assert explanation.headline == "Not suitable for Gaming"
        assert explanation.disqualifications == ["No game mode"]
        assert explanation.strengths == []

    def test_thresholds_from_config(self, engine, category):
        config = ScorerConfig(explanation=ExplanationConfig(strength_threshold=0.95, weakness_threshold=0.1))
        result = engine.evaluate(product("p", quality=90, durability=20))
        explanation = ScoreExplainer(config).explain(result, category)
        assert explanation.strengths == []
        assert explanation.weaknesses == []


class TestSummarizeRanking:
    """Tests for ScoreExplainer.summarize_ranking()."""

    def test_summary_counts_and_top_pick(self, engine):
        ranking = engine.rank([
            {"product_id": "a", "name": "Alpha", "facts": {"quality": 95, "durability": 80}},
            product("b", quality=40, durability=40),
            product("c", quality=99, durability=99, game_mode=False),
        ], "gaming")
        summary = summarize_ranking(ranking, ScorerConfig())
        assert summary.top_pick == "Alpha"
        assert summary.top_pick_score == ranking.ranked[0].result.score
        assert summary.ranked_count == 2
        assert summary.excluded_count == 1
        assert summary.exclusion_reasons == {"c": ["No game mode"]}
        assert summary.key_drivers == [
            "Durability: 80 (utility 0.80)",
            "Quality: 95 (utility 0.95)",
        ]

    def test_no_qualifying_products(self, engine):
        ranking = engine.rank([product("c", quality=99, durability=99, game_mode=False)], "gaming")
        summary = summarize_ranking(ranking, ScorerConfig())
        assert summary.top_pick is None
        assert summary.key_drivers == ["No product qualifies for this context"]

    def test_tied_display_scores_are_flagged(self, engine):
        ranking = engine.rank([
            product("a", quality=50, durability=50),
            product("b", quality=50, durability=50),
        ])
        summary = summarize_ranking(ranking, ScorerConfig())
        assert summary.key_drivers == ["Tied display score with b"]
