"""Pydantic models for the Product Scoring Engine.

Category configuration schemas (attributes, curves, constraints, context
profiles) and the input/output models of an evaluation. Configuration
models are frozen: a loaded category is never mutated.
"""

import math
from enum import Enum
from typing import Annotated, Any, Callable, Iterator, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ENGINE_VERSION = "1.0.0"

# Reserved attribute id for the editorial score virtual attribute
EDITORIAL_ATTRIBUTE_ID = "editorial"

# z-score of the 95th percentile of the standard normal distribution
_Z_95 = 1.6448536269514722


# =============================================================================
# Enums
# =============================================================================


class Direction(str, Enum):
    """Whether higher raw values are better or worse."""
    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"


class MissingValueStrategy(str, Enum):
    """What to do when a product has no value for an attribute."""
    IMPUTE_PENALTY = "impute_penalty"  # Run impute_value through the curve
    IMPUTE_NEUTRAL = "impute_neutral"  # Neutral utility (0.5)
    FAIL = "fail"  # Product cannot be scored


class AggregationMode(str, Enum):
    """How per-attribute utilities are combined."""
    GEOMETRIC = "geometric"
    ARITHMETIC = "arithmetic"


class Severity(str, Enum):
    """Display severity of a soft constraint penalty."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConditionOp(str, Enum):
    """Operators available to declarative constraint conditions."""
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    IN = "in"
    NOT_IN = "not_in"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"
    PRESENT = "present"
    MISSING = "missing"

    def needs_operand(self) -> bool:
        """Check if the operator compares against a value."""
        return self not in (
            ConditionOp.IS_TRUE,
            ConditionOp.IS_FALSE,
            ConditionOp.PRESENT,
            ConditionOp.MISSING,
        )


def resolve_path(data: Any, path: str) -> Any:
    """Resolve a dot-notation path (``specs.hdmi.ports``) in nested data.

    Integer segments index into lists. Returns None when any segment is absent.
    """
    current = data
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current


# =============================================================================
# Normalization Curves
# =============================================================================


class LinearCurve(BaseModel):
    """Min-max normalization."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["linear"] = "linear"
    min: float
    max: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "LinearCurve":
        if not (math.isfinite(self.min) and math.isfinite(self.max)):
            raise ValueError("linear curve bounds must be finite")
        if self.max <= self.min:
            raise ValueError(f"linear curve requires max > min (got min={self.min}, max={self.max})")
        return self


class SigmoidCurve(BaseModel):
    """Logistic curve for attributes with a perceptual threshold."""
    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    kind: Literal["sigmoid"] = "sigmoid"
    midpoint: float  # Raw value where utility is exactly 0.5
    steepness: float = Field(..., gt=0)


class LogNormalCurve(BaseModel):
    """Log-normal CDF for long right-tailed attributes (price, power).

    Can be authored either as ``mu``/``sigma`` or as ``low``/``high``, the
    raw values that should sit at the 5th and 95th percentiles.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    kind: Literal["log_normal"] = "log_normal"
    mu: float
    sigma: float = Field(..., gt=0)

    @model_validator(mode="before")
    @classmethod
    def _from_range(cls, data: Any) -> Any:
        if not isinstance(data, dict) or ("low" not in data and "high" not in data):
            return data
        data = dict(data)
        low = data.pop("low", None)
        high = data.pop("high", None)
        if "mu" in data or "sigma" in data:
            raise ValueError("log_normal curve takes either mu/sigma or low/high, not both")
        if low is None or high is None:
            raise ValueError("log_normal curve range needs both low and high")
        if low <= 0 or high <= low:
            raise ValueError(f"log_normal range requires 0 < low < high (got low={low}, high={high})")
        data["mu"] = (math.log(low) + math.log(high)) / 2
        data["sigma"] = (math.log(high) - math.log(low)) / (2 * _Z_95)
        return data

    @classmethod
    def from_range(cls, low: float, high: float) -> "LogNormalCurve":
        """Build a curve whose 5th/95th percentiles are ``low``/``high``."""
        return cls.model_validate({"kind": "log_normal", "low": low, "high": high})


class BooleanCurve(BaseModel):
    """Feature presence mapped to two configured utilities."""
    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    kind: Literal["boolean"] = "boolean"
    present_utility: float = Field(0.95, ge=0, le=1)
    absent_utility: float = Field(0.50, ge=0, le=1)


class PassthroughCurve(BaseModel):
    """Raw value already on a 0-1 scale."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["passthrough"] = "passthrough"


Curve = Annotated[
    Union[LinearCurve, SigmoidCurve, LogNormalCurve, BooleanCurve, PassthroughCurve],
    Field(discriminator="kind"),
]


# =============================================================================
# Attributes
# =============================================================================


class AttributeDefinition(BaseModel):
    """One scored dimension of a product category."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    label: Optional[str] = None
    data_field: str = Field(..., min_length=1)  # Dot path into the fact sheet
    weight: float = Field(..., ge=0)
    direction: Direction = Direction.MAXIMIZE
    normalization: Curve
    missing_value_strategy: MissingValueStrategy = MissingValueStrategy.IMPUTE_NEUTRAL
    impute_value: Any = None
    description: Optional[str] = None
    group: Optional[str] = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "AttributeDefinition":
        if not math.isfinite(self.weight):
            raise ValueError(f"attribute '{self.id}' weight must be finite")
        if (
            self.missing_value_strategy == MissingValueStrategy.IMPUTE_PENALTY
            and self.impute_value is None
        ):
            raise ValueError(f"attribute '{self.id}' uses impute_penalty but has no impute_value")
        curve = self.normalization
        if isinstance(curve, BooleanCurve):
            if self.direction == Direction.MAXIMIZE and curve.present_utility < curve.absent_utility:
                raise ValueError(
                    f"attribute '{self.id}': present_utility must be >= absent_utility when maximizing"
                )
            if self.direction == Direction.MINIMIZE and curve.present_utility > curve.absent_utility:
                raise ValueError(
                    f"attribute '{self.id}': present_utility must be <= absent_utility when minimizing"
                )
        return self

    @property
    def display_label(self) -> str:
        return self.label or self.id.replace("_", " ").capitalize()


class EditorialIntegration(BaseModel):
    """Treats a product's editorial/base score as one more attribute."""
    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    weight: float = Field(..., ge=0)
    scale: float = Field(10.0, gt=0)  # Upper bound of the raw editorial score
    label: str = "Editorial score"
    missing_value_strategy: MissingValueStrategy = MissingValueStrategy.IMPUTE_NEUTRAL
    impute_value: Optional[float] = None

    def as_attribute(self) -> AttributeDefinition:
        """Build the virtual attribute used during aggregation."""
        return AttributeDefinition(
            id=EDITORIAL_ATTRIBUTE_ID,
            label=self.label,
            data_field="base_score",
            weight=self.weight,
            normalization=LinearCurve(min=0.0, max=self.scale),
            missing_value_strategy=self.missing_value_strategy,
            impute_value=self.impute_value,
        )


# =============================================================================
# Constraints
# =============================================================================


class Condition(BaseModel):
    """Declarative predicate over a product's facts and the user's context.

    Exactly one form is allowed per node:

    - ``{fact, op, value | user_value, default}`` compares a product fact
    - ``{user, op, value}`` tests a fact about the user's situation
    - ``{context_in: [...]}`` tests the selected context profiles
    - ``{all: [...]}``, ``{any: [...]}``, ``{not: {...}}`` combine conditions
    """
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    fact: Optional[str] = None
    user: Optional[str] = None
    op: Optional[ConditionOp] = None
    value: Any = None
    user_value: Optional[str] = None  # Compare the fact against a user fact
    default: Any = None  # Substituted when the fact is missing
    context_in: Optional[tuple[str, ...]] = None
    all_: Optional[tuple["Condition", ...]] = Field(None, alias="all")
    any_: Optional[tuple["Condition", ...]] = Field(None, alias="any")
    not_: Optional["Condition"] = Field(None, alias="not")

    @model_validator(mode="after")
    def _check_form(self) -> "Condition":
        forms = [
            self.fact is not None or self.user is not None,
            self.context_in is not None,
            self.all_ is not None,
            self.any_ is not None,
            self.not_ is not None,
        ]
        if sum(forms) != 1:
            raise ValueError(
                "condition must have exactly one of: fact/user comparison, "
                "context_in, all, any, not"
            )
        if self.fact is not None and self.user is not None:
            raise ValueError("condition cannot test both 'fact' and 'user'")
        if self.fact is None and self.user is None:
            return self

        if self.op is None:
            raise ValueError("comparison condition requires 'op'")
        has_value = "value" in self.model_fields_set
        if self.user is not None and self.user_value is not None:
            raise ValueError("'user_value' only applies to 'fact' conditions")
        if self.op.needs_operand():
            if has_value == (self.user_value is not None):
                raise ValueError(f"operator '{self.op.value}' needs exactly one of 'value' or 'user_value'")
            if self.op in (ConditionOp.IN, ConditionOp.NOT_IN) and has_value:
                if not isinstance(self.value, (list, tuple)):
                    raise ValueError(f"operator '{self.op.value}' needs a list value")
        elif has_value or self.user_value is not None:
            raise ValueError(f"operator '{self.op.value}' takes no operand")
        return self

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    def iter_conditions(self) -> Iterator["Condition"]:
        """Yield this condition and every nested condition."""
        yield self
        for child in (self.all_ or ()) + (self.any_ or ()):
            yield from child.iter_conditions()
        if self.not_ is not None:
            yield from self.not_.iter_conditions()


Condition.model_rebuild()


class _ConstraintBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    reason: str
    when: Optional[Condition] = None
    # For categories built in code: predicate(facts, context) -> bool
    predicate: Optional[Callable[..., bool]] = Field(None, exclude=True)
    # Only evaluated when one of these context profiles is selected
    contexts: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_predicate(self):
        if (self.when is None) == (self.predicate is None):
            raise ValueError(f"constraint '{self.id}' needs exactly one of 'when' or 'predicate'")
        return self


class HardConstraint(_ConstraintBase):
    """Disqualifies a product outright when its predicate is true."""


class SoftConstraint(_ConstraintBase):
    """Multiplies the aggregate by ``penalty_multiplier`` when true."""
    penalty_multiplier: float = Field(..., gt=0, lt=1)
    severity: Severity = Severity.MEDIUM
    enabled_by_default: bool = True


# =============================================================================
# Context Profiles
# =============================================================================


class ContextProfile(BaseModel):
    """A named user situation that re-weights criteria."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    name: str
    description: Optional[str] = None
    group: Optional[str] = None
    weights: dict[str, float] = Field(default_factory=dict)  # Absolute overrides
    weight_multipliers: dict[str, float] = Field(default_factory=dict)
    enable_constraints: tuple[str, ...] = ()
    disable_constraints: tuple[str, ...] = ()
    mutually_exclusive_with: tuple[str, ...] = ()

    @field_validator("weights", "weight_multipliers")
    @classmethod
    def _non_negative(cls, value: dict[str, float]) -> dict[str, float]:
        for key, weight in value.items():
            if weight < 0 or not math.isfinite(weight):
                raise ValueError(f"weight for '{key}' must be a finite non-negative number")
        return value

    def weight_for(self, attribute_id: str, base_weight: float) -> float:
        """Effective weight of an attribute under this profile alone."""
        if attribute_id in self.weights:
            return self.weights[attribute_id]
        return base_weight * self.weight_multipliers.get(attribute_id, 1.0)


# =============================================================================
# Category Configuration
# =============================================================================


class CategoryConfiguration(BaseModel):
    """Declarative scoring configuration for one product category."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    category_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    version: str = "1.0.0"
    aggregation: AggregationMode = AggregationMode.GEOMETRIC
    attributes: tuple[AttributeDefinition, ...] = Field(..., min_length=1)
    hard_constraints: tuple[HardConstraint, ...] = ()
    soft_constraints: tuple[SoftConstraint, ...] = ()
    contexts: tuple[ContextProfile, ...] = ()
    exclusion_groups: tuple[tuple[str, ...], ...] = ()
    editorial: Optional[EditorialIntegration] = None

    @model_validator(mode="after")
    def _check_references(self) -> "CategoryConfiguration":
        attribute_ids = _unique_ids("attribute", [a.id for a in self.attributes])
        if self.editorial is not None:
            if EDITORIAL_ATTRIBUTE_ID in attribute_ids:
                raise ValueError(f"attribute id '{EDITORIAL_ATTRIBUTE_ID}' is reserved for editorial integration")
            attribute_ids.add(EDITORIAL_ATTRIBUTE_ID)

        _unique_ids(
            "constraint",
            [c.id for c in self.hard_constraints] + [c.id for c in self.soft_constraints],
        )
        soft_ids = {c.id for c in self.soft_constraints}
        context_ids = _unique_ids("context", [c.id for c in self.contexts])

        for profile in self.contexts:
            unknown = (set(profile.weights) | set(profile.weight_multipliers)) - attribute_ids
            if unknown:
                raise ValueError(f"context '{profile.id}' weights unknown attributes: {sorted(unknown)}")
            unknown = (set(profile.enable_constraints) | set(profile.disable_constraints)) - soft_ids
            if unknown:
                raise ValueError(f"context '{profile.id}' toggles unknown soft constraints: {sorted(unknown)}")
            if profile.id in profile.mutually_exclusive_with:
                raise ValueError(f"context '{profile.id}' cannot be mutually exclusive with itself")
            unknown = set(profile.mutually_exclusive_with) - context_ids
            if unknown:
                raise ValueError(f"context '{profile.id}' excludes unknown contexts: {sorted(unknown)}")

        for group in self.exclusion_groups:
            if len(set(group)) < 2:
                raise ValueError(f"exclusion group {list(group)} needs at least two distinct contexts")
            unknown = set(group) - context_ids
            if unknown:
                raise ValueError(f"exclusion group references unknown contexts: {sorted(unknown)}")

        for constraint in self.hard_constraints + self.soft_constraints:
            referenced = set(constraint.contexts)
            if constraint.when is not None:
                for node in constraint.when.iter_conditions():
                    referenced.update(node.context_in or ())
            unknown = referenced - context_ids
            if unknown:
                raise ValueError(f"constraint '{constraint.id}' references unknown contexts: {sorted(unknown)}")

        attributes = self.scored_attributes()
        if sum(a.weight for a in attributes) <= 0:
            raise ValueError("base attribute weights sum to zero and cannot be normalized")
        for profile in self.contexts:
            if sum(profile.weight_for(a.id, a.weight) for a in attributes) <= 0:
                raise ValueError(f"context '{profile.id}' weights sum to zero and cannot be normalized")
        return self

    def scored_attributes(self) -> tuple[AttributeDefinition, ...]:
        """Attributes taking part in aggregation, including the editorial one."""
        if self.editorial is None:
            return self.attributes
        return self.attributes + (self.editorial.as_attribute(),)

    def get_context(self, context_id: str) -> Optional[ContextProfile]:
        for profile in self.contexts:
            if profile.id == context_id:
                return profile
        return None

    def get_attribute(self, attribute_id: str) -> Optional[AttributeDefinition]:
        for attribute in self.scored_attributes():
            if attribute.id == attribute_id:
                return attribute
        return None

    @property
    def display_name(self) -> str:
        return self.name or self.category_id


def _unique_ids(kind: str, ids: list[str]) -> set[str]:
    seen: set[str] = set()
    for item in ids:
        if item in seen:
            raise ValueError(f"duplicate {kind} id '{item}'")
        seen.add(item)
    return seen


# =============================================================================
# Evaluation Inputs
# =============================================================================


class EvaluationContext(BaseModel):
    """The user's situation handed to every constraint predicate."""
    model_config = ConfigDict(frozen=True)

    context_ids: tuple[str, ...] = ()  # Empty means general use
    facts: dict[str, Any] = Field(default_factory=dict)  # e.g. mains voltage

    @property
    def is_general_use(self) -> bool:
        return not self.context_ids

    def lookup(self, path: str) -> Any:
        return resolve_path(self.facts, path)


class ProductFactSheet(BaseModel):
    """Raw per-product input owned by the product data collaborator."""
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    product_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    facts: dict[str, Any] = Field(default_factory=dict)
    base_score: Optional[float] = None  # Editorial score, if any

    def lookup(self, path: str) -> Any:
        return resolve_path(self.facts, path)


# =============================================================================
# Evaluation Outputs
# =============================================================================


class AttributeUtility(BaseModel):
    """Audit record for one attribute of one evaluation."""
    attribute_id: str
    label: str
    raw_value: Any = None
    utility: float  # 0-1
    weight: float  # Normalized weight used in aggregation
    contribution: float  # u^w (geometric) or u*w (arithmetic)
    imputed: bool = False


class AppliedPenalty(BaseModel):
    """A triggered soft constraint."""
    constraint_id: str
    reason: str
    multiplier: float
    severity: Severity = Severity.MEDIUM


class FatalReason(BaseModel):
    """A triggered hard constraint."""
    constraint_id: str
    reason: str


class EvaluationResult(BaseModel):
    """Score and auditable breakdown of one product in one context."""
    product_id: str
    category_id: str
    context_ids: tuple[str, ...] = ()
    aggregation: AggregationMode

    # Display score (rounded); None when fatally constrained
    score: Optional[float] = None
    # Full precision final utility, used for tie-breaks
    utility: Optional[float] = None
    base_utility: Optional[float] = None  # Before soft penalties
    penalty_factor: float = 1.0

    per_attribute_utility: dict[str, float] = Field(default_factory=dict)
    breakdown: list[AttributeUtility] = Field(default_factory=list)
    applied_penalties: list[AppliedPenalty] = Field(default_factory=list)
    imputed_attributes: list[str] = Field(default_factory=list)

    is_fatally_constrained: bool = False
    fatal_reasons: list[FatalReason] = Field(default_factory=list)

    engine_version: str = Field(default=ENGINE_VERSION)


class RankedEntry(BaseModel):
    """A scored product at its position in a ranking."""
    rank: int = Field(..., ge=1)
    product: ProductFactSheet
    result: EvaluationResult


class ExcludedEntry(BaseModel):
    """A product disqualified by one or more hard constraints."""
    product: ProductFactSheet
    result: EvaluationResult


class UnscorableEntry(BaseModel):
    """A product that could not be scored (missing required attribute)."""
    product: ProductFactSheet
    attribute_id: str
    message: str


class RankingResult(BaseModel):
    """Output of ranking a set of products in one category and context."""
    category_id: str
    context_ids: tuple[str, ...] = ()
    ranked: list[RankedEntry] = Field(default_factory=list)
    excluded: list[ExcludedEntry] = Field(default_factory=list)
    unscorable: list[UnscorableEntry] = Field(default_factory=list)


# =============================================================================
# Comparison and Explanation Models
# =============================================================================


class AttributeComparison(BaseModel):
    """Per-attribute head-to-head between two products."""
    attribute_id: str
    label: str
    utility_a: Optional[float] = None
    utility_b: Optional[float] = None
    winner: Optional[str] = None  # Product id, None on a tie


class ProductComparison(BaseModel):
    """Head-to-head comparison of two products in the same context."""
    category_id: str
    context_ids: tuple[str, ...] = ()
    result_a: EvaluationResult
    result_b: EvaluationResult
    winner: Optional[str] = None  # Product id, None on a tie or double exclusion
    score_difference: Optional[float] = None
    attributes: list[AttributeComparison] = Field(default_factory=list)


class ContextSweep(BaseModel):
    """One product evaluated under general use and every context profile."""
    product_id: str
    results: list[EvaluationResult] = Field(default_factory=list)
    best_context: Optional[str] = None  # "" stands for general use
    worst_context: Optional[str] = None


class ScoreExplanation(BaseModel):
    """Human-readable explanation of one evaluation."""
    product_id: str
    headline: str
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    penalties: list[str] = Field(default_factory=list)
    disqualifications: list[str] = Field(default_factory=list)
    imputed: list[str] = Field(default_factory=list)


class RankingSummary(BaseModel):
    """Summary of a ranking for display."""
    category_id: str
    context_ids: tuple[str, ...] = ()
    top_pick: Optional[str] = None
    top_pick_score: Optional[float] = None
    ranked_count: int = 0
    excluded_count: int = 0
    unscorable_count: int = 0
    key_drivers: list[str] = Field(default_factory=list)
    exclusion_reasons: dict[str, list[str]] = Field(default_factory=dict)
