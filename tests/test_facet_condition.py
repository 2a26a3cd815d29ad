import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from millisearch.facet_condition import (
    AndCondition,
    FacetConditionError,
    FacetNumberOperator,
    FacetStringOperator,
    NumberOp,
    OperatorNumber,
    OperatorString,
    OrCondition,
    condition_from_array,
    explore_facet_number_levels,
)
from millisearch.facet_store import Bound, Facets, FacetStore, FacetType

FIELDS = {"channel": 0, "timestamp": 1, "title": 2}
FACETED = {"channel": FacetType.STRING, "timestamp": FacetType.NUMBER}


def num(op, value, upper=None):
    return FacetNumberOperator(op, value, upper)


def numbers_store(values):
    """Document id -> number value, on field 0, with levels built."""
    store = FacetStore()
    for docid, value in values.items():
        store.add_number(0, value, [docid])
    Facets(store, {0: FacetType.NUMBER}).execute()
    return store


def test_string_equal_is_lowercased():
    assert FacetStringOperator.equal("Ponce") == FacetStringOperator.equal("ponce")
    assert FacetStringOperator.equal("Ponce").value == "ponce"


def test_string_not_equal_is_negated_equal():
    assert FacetStringOperator.not_equal("ponce") == FacetStringOperator.equal("ponce").negate()
    cond = OperatorString(0, FacetStringOperator.equal("ponce")).negate()
    assert cond == OperatorString(0, FacetStringOperator.not_equal("ponce"))


def test_negating_between_gives_or():
    cond = OperatorNumber(0, num(NumberOp.BETWEEN, 22, 44)).negate()
    assert cond == OrCondition(
        OperatorNumber(0, num(NumberOp.LOWER_THAN, 22)),
        OperatorNumber(0, num(NumberOp.GREATER_THAN, 44)),
    )


def test_negating_parenthesised_and():
    inner = AndCondition(
        OperatorNumber(1, num(NumberOp.BETWEEN, 22, 44)),
        OperatorString(0, FacetStringOperator.not_equal("ponce")),
    )
    expected = OrCondition(
        OrCondition(
            OperatorNumber(1, num(NumberOp.LOWER_THAN, 22)),
            OperatorNumber(1, num(NumberOp.GREATER_THAN, 44)),
        ),
        OperatorString(0, FacetStringOperator.equal("ponce")),
    )
    assert inner.negate() == expected


@pytest.mark.parametrize(
    "op, negated",
    [
        (NumberOp.GREATER_THAN, NumberOp.LOWER_THAN_OR_EQUAL),
        (NumberOp.GREATER_THAN_OR_EQUAL, NumberOp.LOWER_THAN),
        (NumberOp.EQUAL, NumberOp.NOT_EQUAL),
        (NumberOp.NOT_EQUAL, NumberOp.EQUAL),
        (NumberOp.LOWER_THAN, NumberOp.GREATER_THAN_OR_EQUAL),
        (NumberOp.LOWER_THAN_OR_EQUAL, NumberOp.GREATER_THAN),
    ],
)
def test_number_operator_negate(op, negated):
    assert num(op, 3).negate() == (num(negated, 3), None)


def test_between_requires_upper():
    with pytest.raises(ValueError):
        FacetNumberOperator(NumberOp.BETWEEN, 1.0)


def test_from_array():
    cond = condition_from_array(
        FIELDS, FACETED, ["channel:gotaga", ["timestamp:44", "channel:-ponce"]]
    )
    expected = AndCondition(
        OperatorString(0, FacetStringOperator.equal("gotaga")),
        OrCondition(
            OperatorNumber(1, num(NumberOp.EQUAL, 44)),
            OperatorString(0, FacetStringOperator.not_equal("ponce")),
        ),
    )
    assert cond == expected


def test_from_array_empty_is_none():
    assert condition_from_array(FIELDS, FACETED, [[], []]) is None


def test_from_array_accepts_string_types():
    cond = condition_from_array(FIELDS, {"timestamp": "number"}, ["timestamp: 2.5 "])
    assert cond == OperatorNumber(1, num(NumberOp.EQUAL, 2.5))


@pytest.mark.parametrize(
    "rule, message",
    [
        ("channel", "missing facet condition value"),
        ("unknown:x", "isn't present in the fields ids map"),
        ("title:x", "isn't a faceted field"),
        ("timestamp:abc", "invalid float literal"),
    ],
)
def test_from_array_errors(rule, message):
    with pytest.raises(FacetConditionError, match=message):
        condition_from_array(FIELDS, FACETED, [rule])


@pytest.mark.parametrize(
    "operator, expected",
    [
        (num(NumberOp.GREATER_THAN, 50), set(range(51, 100))),
        (num(NumberOp.GREATER_THAN_OR_EQUAL, 50), set(range(50, 100))),
        (num(NumberOp.EQUAL, 50), {50}),
        (num(NumberOp.NOT_EQUAL, 50), set(range(100)) - {50}),
        (num(NumberOp.LOWER_THAN, 10), set(range(10))),
        (num(NumberOp.LOWER_THAN_OR_EQUAL, 10), set(range(11))),
        (num(NumberOp.BETWEEN, 22, 44), set(range(22, 45))),
        (num(NumberOp.BETWEEN, 44, 22), set()),
    ],
)
def test_evaluate_number_operators(operator, expected):
    store = numbers_store({i: i for i in range(100)})
    assert OperatorNumber(0, operator).evaluate(store) == expected


def test_evaluate_on_empty_field():
    store = FacetStore()
    assert OperatorNumber(3, num(NumberOp.EQUAL, 1)).evaluate(store) == set()


def test_evaluate_strings_and_combinations():
    store = FacetStore()
    store.add_string(0, "ponce", [1, 2])
    store.add_string(0, "gotaga", [3])
    store.add_number(1, 30, [1, 3])
    store.add_number(1, 50, [2])
    Facets(store, {0: FacetType.STRING, 1: FacetType.NUMBER}).execute()

    not_ponce = OperatorString(0, FacetStringOperator.not_equal("ponce"))
    assert not_ponce.evaluate(store) == {3}
    between = OperatorNumber(1, num(NumberOp.BETWEEN, 22, 44))
    assert AndCondition(between, not_ponce).evaluate(store) == {3}
    gotaga = OperatorString(0, FacetStringOperator.equal("Gotaga"))
    assert OrCondition(gotaga, OperatorNumber(1, num(NumberOp.EQUAL, 50))).evaluate(store) == {2, 3}


def test_explore_collects_into_output():
    store = numbers_store({i: i for i in range(100)})
    output = {1000}
    level = store.highest_level(0)
    explore_facet_number_levels(
        store, 0, level, Bound.included(5), Bound.excluded(9), output
    )
    assert output == {1000, 5, 6, 7, 8}


@settings(max_examples=60, deadline=None)
@given(
    st.dictionaries(st.integers(0, 300), st.integers(-30, 30), max_size=120),
    st.integers(-35, 35),
    st.integers(-35, 35),
)
def test_between_returns_documents_in_range(values, low, high):
    store = numbers_store(values)
    cond = OperatorNumber(0, num(NumberOp.BETWEEN, low, high))
    expected = {d for d, v in values.items() if low <= v <= high}
    assert cond.evaluate(store) == expected


@settings(max_examples=60, deadline=None)
@given(
    st.dictionaries(st.integers(0, 300), st.integers(-30, 30), max_size=120),
    st.integers(-35, 35),
)
def test_condition_and_negation_partition_documents(values, pivot):
    store = numbers_store(values)
    cond = OperatorNumber(0, num(NumberOp.GREATER_THAN, pivot))
    matched = cond.evaluate(store)
    rest = cond.negate().evaluate(store)
    assert matched & rest == set()
    assert matched | rest == set(values)