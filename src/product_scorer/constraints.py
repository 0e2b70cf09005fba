"""Constraint Evaluator - stage 3 of the scoring engine.

Decides which hard (disqualifying) and soft (penalizing) constraints apply
to a product in a given context, and validates context selections against
declared mutual exclusions.
"""

import operator
from itertools import combinations
from typing import Any, Iterable, Mapping, Optional, Union

from .errors import MutualExclusionError, UnknownContextError
from .normalizer import coerce_bool, coerce_number
from .schema import (
    AppliedPenalty,
    CategoryConfiguration,
    Condition,
    ConditionOp,
    EvaluationContext,
    FatalReason,
    HardConstraint,
    SoftConstraint,
    resolve_path,
)

ContextSelection = Union[None, str, Iterable[str]]

_ORDERING_OPS = {
    ConditionOp.LT: operator.lt,
    ConditionOp.LE: operator.le,
    ConditionOp.GT: operator.gt,
    ConditionOp.GE: operator.ge,
}


# =============================================================================
# Context Selection
# =============================================================================


def check_mutual_exclusion(category: CategoryConfiguration, context_ids: Iterable[str]) -> None:
    """Raise if any two selected contexts are declared mutually exclusive.

    A pair conflicts when either profile lists the other, or when both belong
    to the same exclusion group. Pairs are checked in selection order so the
    reported pair is stable for a given input.

    Raises:
        MutualExclusionError: Naming both conflicting context ids.
    """
    selected = list(dict.fromkeys(context_ids))
    for first, second in combinations(selected, 2):
        if _are_exclusive(category, first, second):
            raise MutualExclusionError(first, second)


def _are_exclusive(category: CategoryConfiguration, first: str, second: str) -> bool:
    for a, b in ((first, second), (second, first)):
        profile = category.get_context(a)
        if profile is not None and b in profile.mutually_exclusive_with:
            return True
    return any(first in group and second in group for group in category.exclusion_groups)


def resolve_context(
    category: CategoryConfiguration,
    context_id: ContextSelection = None,
    user_facts: Optional[Mapping[str, Any]] = None,
) -> EvaluationContext:
    """Validate a context selection and build the evaluation context.

    Args:
        category: Loaded category configuration
        context_id: None for general use, a single id, or several ids
        user_facts: Facts about the user's situation (voltage, room size...)

    Raises:
        UnknownContextError: If an id is not defined by the category.
        MutualExclusionError: If two selected contexts are mutually exclusive.
    """
    if context_id is None:
        ids: tuple[str, ...] = ()
    elif isinstance(context_id, str):
        ids = (context_id,)
    else:
        ids = tuple(dict.fromkeys(context_id))

    for cid in ids:
        if category.get_context(cid) is None:
            raise UnknownContextError(category.category_id, cid)

    check_mutual_exclusion(category, ids)
    return EvaluationContext(context_ids=ids, facts=dict(user_facts or {}))


# =============================================================================
# Condition Evaluation
# =============================================================================


def evaluate_condition(
    condition: Condition,
    facts: Mapping[str, Any],
    context: EvaluationContext,
) -> bool:
    """Evaluate a declarative condition against product facts and context."""
    if condition.all_ is not None:
        return all(evaluate_condition(c, facts, context) for c in condition.all_)
    if condition.any_ is not None:
        return any(evaluate_condition(c, facts, context) for c in condition.any_)
    if condition.not_ is not None:
        return not evaluate_condition(condition.not_, facts, context)
    if condition.context_in is not None:
        return any(cid in condition.context_in for cid in context.context_ids)

    if condition.fact is not None:
        subject = resolve_path(facts, condition.fact)
        if subject is None and condition.has_default:
            subject = condition.default
    else:
        subject = context.lookup(condition.user)

    if condition.user_value is not None:
        operand = context.lookup(condition.user_value)
        if operand is None:
            return False
    else:
        operand = condition.value

    return _apply_op(condition.op, subject, operand)


def _apply_op(op: ConditionOp, subject: Any, operand: Any) -> bool:
    if op == ConditionOp.PRESENT:
        return subject is not None
    if op == ConditionOp.MISSING:
        return subject is None
    if subject is None:
        return False
    if op == ConditionOp.IS_TRUE:
        return coerce_bool(subject) is True
    if op == ConditionOp.IS_FALSE:
        return coerce_bool(subject) is False
    if op == ConditionOp.EQ:
        return _equals(subject, operand)
    if op == ConditionOp.NE:
        return not _equals(subject, operand)
    if op == ConditionOp.IN:
        return any(_equals(subject, item) for item in operand)
    if op == ConditionOp.NOT_IN:
        return not any(_equals(subject, item) for item in operand)

    left = coerce_number(subject)
    right = coerce_number(operand)
    if left is None or right is None:
        return False
    return _ORDERING_OPS[op](left, right)


def _equals(subject: Any, operand: Any) -> bool:
    if isinstance(subject, bool) or isinstance(operand, bool):
        return coerce_bool(subject) is not None and coerce_bool(subject) == coerce_bool(operand)
    left = coerce_number(subject)
    right = coerce_number(operand)
    if left is not None and right is not None:
        return left == right
    if isinstance(subject, str) and isinstance(operand, str):
        return subject.strip().lower() == operand.strip().lower()
    return subject == operand


# =============================================================================
# Constraint Evaluator
# =============================================================================


class ConstraintEvaluator:
    """Applies a category's hard and soft constraints.

    The active context is part of every predicate's input, so constraint
    authors can express context-dependent logic directly. A constraint
    scoped to ``contexts`` only fires when one of those profiles is selected.
    """

    def __init__(self, category: CategoryConfiguration):
        self.category = category

    def fatal_reasons(
        self,
        facts: Mapping[str, Any],
        context: EvaluationContext,
    ) -> list[FatalReason]:
        """Return every hard constraint that disqualifies the product."""
        reasons = []
        for constraint in self.category.hard_constraints:
            if self.is_triggered(constraint, facts, context):
                reasons.append(FatalReason(constraint_id=constraint.id, reason=constraint.reason))
        return reasons

    def penalties(
        self,
        facts: Mapping[str, Any],
        context: EvaluationContext,
    ) -> list[AppliedPenalty]:
        """Return every active soft constraint whose predicate is true."""
        penalties = []
        for constraint in self.category.soft_constraints:
            if not self._is_enabled(constraint, context):
                continue
            if self.is_triggered(constraint, facts, context):
                penalties.append(AppliedPenalty(
                    constraint_id=constraint.id,
                    reason=constraint.reason,
                    multiplier=constraint.penalty_multiplier,
                    severity=constraint.severity,
                ))
        return penalties

    def _is_enabled(self, constraint: SoftConstraint, context: EvaluationContext) -> bool:
        """Check default state and per-profile enable/disable toggles."""
        enabled = constraint.enabled_by_default
        for cid in context.context_ids:
            profile = self.category.get_context(cid)
            if profile is None:
                continue
            if constraint.id in profile.disable_constraints:
                return False
            if constraint.id in profile.enable_constraints:
                enabled = True
        return enabled

    def is_triggered(
        self,
        constraint: Union[HardConstraint, SoftConstraint],
        facts: Mapping[str, Any],
        context: EvaluationContext,
    ) -> bool:
        if constraint.contexts and not any(cid in constraint.contexts for cid in context.context_ids):
            return False
        if constraint.predicate is not None:
            return bool(constraint.predicate(facts, context))
        return evaluate_condition(constraint.when, facts, context)


def combined_multiplier(penalties: Iterable[AppliedPenalty]) -> float:
    """Compound soft penalties multiplicatively."""
    factor = 1.0
    for penalty in penalties:
        factor *= penalty.multiplier
    return factor
