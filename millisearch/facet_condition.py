"""Facet conditions: filters on faceted fields and their evaluation."""

from __future__ import annotations

import enum
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .facet_store import (
    F64_MAX,
    F64_MIN,
    Bound,
    BoundKind,
    FacetStore,
    FacetType,
    facet_range,
)

__all__ = [
    "FacetConditionError",
    "NumberOp",
    "FacetNumberOperator",
    "FacetStringOperator",
    "FacetCondition",
    "OperatorString",
    "OperatorNumber",
    "OrCondition",
    "AndCondition",
    "condition_from_array",
    "explore_facet_number_levels",
]

_NUMBER_RE = re.compile(
    r"[+-]?(?:inf(?:inity)?|nan|(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?)",
    re.IGNORECASE,
)


class FacetConditionError(ValueError):
    """Raised when a facet condition cannot be built."""


def _parse_number(text: str) -> float:
    if not _NUMBER_RE.fullmatch(text):
        raise FacetConditionError(f"invalid float literal: {text!r}")
    return float(text)


class NumberOp(enum.Enum):
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    LOWER_THAN = "lower_than"
    LOWER_THAN_OR_EQUAL = "lower_than_or_equal"
    BETWEEN = "between"


_NEGATED_NUMBER_OPS = {
    NumberOp.GREATER_THAN: NumberOp.LOWER_THAN_OR_EQUAL,
    NumberOp.GREATER_THAN_OR_EQUAL: NumberOp.LOWER_THAN,
    NumberOp.EQUAL: NumberOp.NOT_EQUAL,
    NumberOp.NOT_EQUAL: NumberOp.EQUAL,
    NumberOp.LOWER_THAN: NumberOp.GREATER_THAN_OR_EQUAL,
    NumberOp.LOWER_THAN_OR_EQUAL: NumberOp.GREATER_THAN,
}


@dataclass(frozen=True)
class FacetNumberOperator:
    """A comparison against a number; ``upper`` is only used by BETWEEN."""

    op: NumberOp
    value: float
    upper: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        if self.op is NumberOp.BETWEEN:
            if self.upper is None:
                raise ValueError("a between operator needs an upper value")
            object.__setattr__(self, "upper", float(self.upper))
        elif self.upper is not None:
            raise ValueError(f"a {self.op.value} operator takes a single value")

    def negate(self) -> tuple[FacetNumberOperator, FacetNumberOperator | None]:
        """Return the negation; BETWEEN negates into two operators to be ORed."""
        if self.op is NumberOp.BETWEEN:
            return (
                FacetNumberOperator(NumberOp.LOWER_THAN, self.value),
                FacetNumberOperator(NumberOp.GREATER_THAN, self.upper),  # type: ignore[arg-type]
            )
        return FacetNumberOperator(_NEGATED_NUMBER_OPS[self.op], self.value), None

    def _bounds(self) -> tuple[Bound, Bound]:
        op = self.op
        if op is NumberOp.GREATER_THAN:
            return Bound.excluded(self.value), Bound.included(F64_MAX)
        if op is NumberOp.GREATER_THAN_OR_EQUAL:
            return Bound.included(self.value), Bound.included(F64_MAX)
        if op is NumberOp.EQUAL:
            return Bound.included(self.value), Bound.included(self.value)
        if op is NumberOp.LOWER_THAN:
            return Bound.included(F64_MIN), Bound.excluded(self.value)
        if op is NumberOp.LOWER_THAN_OR_EQUAL:
            return Bound.included(F64_MIN), Bound.included(self.value)
        if op is NumberOp.BETWEEN:
            return Bound.included(self.value), Bound.included(self.upper)  # type: ignore[arg-type]
        raise ValueError(f"{op.value} has no bounds")


@dataclass(frozen=True)
class FacetStringOperator:
    """Equality (or inequality, when ``negated``) with a lowercased string."""

    value: str
    negated: bool = False

    @classmethod
    def equal(cls, value: str) -> FacetStringOperator:
        return cls(value.lower(), False)

    @classmethod
    def not_equal(cls, value: str) -> FacetStringOperator:
        return cls.equal(value).negate()

    def negate(self) -> FacetStringOperator:
        return FacetStringOperator(self.value, not self.negated)


class FacetCondition(ABC):
    """A filter over faceted fields."""

    @abstractmethod
    def negate(self) -> FacetCondition:
        """Return the condition matching exactly the documents this one does not."""

    @abstractmethod
    def evaluate(self, store: FacetStore) -> set[int]:
        """Return the documents ids matching the condition."""


@dataclass(frozen=True)
class OperatorString(FacetCondition):
    field_id: int
    operator: FacetStringOperator

    def negate(self) -> FacetCondition:
        return OperatorString(self.field_id, self.operator.negate())

    def evaluate(self, store: FacetStore) -> set[int]:
        docids = store.string_docids(self.field_id, self.operator.value)
        if self.operator.negated:
            return store.faceted_documents_ids(self.field_id) - docids
        return docids


@dataclass(frozen=True)
class OperatorNumber(FacetCondition):
    field_id: int
    operator: FacetNumberOperator

    def negate(self) -> FacetCondition:
        first, second = self.operator.negate()
        if second is None:
            return OperatorNumber(self.field_id, first)
        return OrCondition(
            OperatorNumber(self.field_id, first), OperatorNumber(self.field_id, second)
        )

    def evaluate(self, store: FacetStore) -> set[int]:
        return _evaluate_number_operator(store, self.field_id, self.operator)


@dataclass(frozen=True)
class OrCondition(FacetCondition):
    left: FacetCondition
    right: FacetCondition

    def negate(self) -> FacetCondition:
        return AndCondition(self.left.negate(), self.right.negate())

    def evaluate(self, store: FacetStore) -> set[int]:
        return self.left.evaluate(store) | self.right.evaluate(store)


@dataclass(frozen=True)
class AndCondition(FacetCondition):
    left: FacetCondition
    right: FacetCondition

    def negate(self) -> FacetCondition:
        return OrCondition(self.left.negate(), self.right.negate())

    def evaluate(self, store: FacetStore) -> set[int]:
        return self.left.evaluate(store) & self.right.evaluate(store)


def _evaluate_number_operator(
    store: FacetStore, field_id: int, operator: FacetNumberOperator
) -> set[int]:
    if operator.op is NumberOp.NOT_EQUAL:
        equal = FacetNumberOperator(NumberOp.EQUAL, operator.value)
        docids = _evaluate_number_operator(store, field_id, equal)
        return store.faceted_documents_ids(field_id) - docids

    left, right = operator._bounds()
    biggest_level = store.highest_level(field_id)
    if biggest_level is None:
        return set()
    output: set[int] = set()
    explore_facet_number_levels(store, field_id, biggest_level, left, right, output)
    return output


def _is_included_at(bound: Bound, value: float) -> bool:
    return bound.kind is BoundKind.INCLUDED and bound.value == value


def explore_facet_number_levels(
    store: FacetStore,
    field_id: int,
    level: int,
    left: Bound,
    right: Bound,
    output: set[int],
) -> None:
    """Add to ``output`` the documents within the range, refining through deeper levels."""
    if left.kind is not BoundKind.UNBOUNDED and right.kind is not BoundKind.UNBOUNDED:
        lv, rv = left.value, right.value
        both_included = left.kind is BoundKind.INCLUDED and right.kind is BoundKind.INCLUDED
        if both_included:
            if lv == rv and level > 0:
                # An exact value is looked up directly in the deepest level.
                explore_facet_number_levels(store, field_id, 0, left, right, output)
                return
            if lv > rv:  # type: ignore[operator]
                return
        elif lv >= rv:  # type: ignore[operator]
            return

    left_found: float | None = None
    right_found: float | None = None
    for i, ((_, _, entry_left, entry_right), docids) in enumerate(
        facet_range(store, field_id, level, left, right)
    ):
        output |= docids
        if i == 0:
            left_found = entry_left
        right_found = entry_right

    if level == 0:
        return
    deeper = level - 1

    if left_found is None or right_found is None:
        # Nothing at this level: look for the same bounds in a more precise one.
        explore_facet_number_levels(store, field_id, deeper, left, right, output)
        return

    if not _is_included_at(left, left_found):
        explore_facet_number_levels(
            store, field_id, deeper, left, Bound.excluded(left_found), output
        )
    if not _is_included_at(right, right_found):
        explore_facet_number_levels(
            store, field_id, deeper, Bound.excluded(right_found), right, output
        )


def _facet_condition(
    fields_ids_map: Mapping[str, int],
    faceted_fields: Mapping[str, FacetType],
    rule: str,
) -> FacetCondition:
    key, sep, value = rule.partition(":")
    if not sep:
        raise FacetConditionError("missing facet condition value")
    if key not in fields_ids_map:
        raise FacetConditionError(f"{key!r} isn't present in the fields ids map")
    field_id = fields_ids_map[key]
    if key not in faceted_fields:
        raise FacetConditionError(f"{key!r} isn't a faceted field")
    facet_type = FacetType(faceted_fields[key])

    value = value.strip()
    negated = value.startswith("-")
    if negated:
        value = value[1:].strip()

    condition: FacetCondition
    if facet_type is FacetType.STRING:
        condition = OperatorString(field_id, FacetStringOperator.equal(value))
    else:
        number = _parse_number(value)
        condition = OperatorNumber(field_id, FacetNumberOperator(NumberOp.EQUAL, number))
    return condition.negate() if negated else condition


def condition_from_array(
    fields_ids_map: Mapping[str, int],
    faceted_fields: Mapping[str, FacetType | str],
    array: Iterable[str | Iterable[str]],
) -> FacetCondition | None:
    """Build a condition from ``key:value`` rules.

    A string item is ANDed with the rest; a list of strings is first ORed
    together. A value starting with ``-`` is negated.
    """
    faceted = {name: FacetType(ftype) for name, ftype in faceted_fields.items()}
    ands: FacetCondition | None = None
    for item in array:
        if isinstance(item, str):
            rule: FacetCondition | None = _facet_condition(fields_ids_map, faceted, item)
        else:
            rule = None
            for text in item:
                condition = _facet_condition(fields_ids_map, faceted, text)
                rule = condition if rule is None else OrCondition(rule, condition)
        if rule is not None:
            ands = rule if ands is None else AndCondition(ands, rule)
    return ands