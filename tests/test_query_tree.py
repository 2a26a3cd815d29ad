import pytest
from hypothesis import given, strategies as st

from millisearch.query_tree import (
    And,
    Consecutive,
    MatchingWords,
    Or,
    Query,
    QueryKind,
    QueryOp,
    fetch_queries,
    make_and,
    make_consecutive,
    make_or,
    maximum_proximity,
    maximum_typo,
    phrase,
)


def exact(word, prefix=False):
    return QueryOp(Query(prefix=prefix, kind=QueryKind.exact(word)))


def tolerant(typo, word, prefix=False):
    return QueryOp(Query(prefix=prefix, kind=QueryKind.tolerant(typo, word)))


def fetching_words_tree():
    # Tree built for the query "wordsplit nyc world".
    nyc_syn = Or(False, [
        And([exact("new"), exact("york")]),
        And([exact("new"), exact("york"), exact("city")]),
    ])
    return Or(False, [
        And([
            Or(False, [
                Consecutive([exact("word"), exact("split")]),
                tolerant(2, "wordsplit"),
            ]),
            Or(False, [
                And([
                    Or(False, [nyc_syn, exact("nyc")]),
                    Or(False, [exact("earth"), exact("nature"), tolerant(1, "world", True)]),
                ]),
                tolerant(1, "nycworld", True),
            ]),
        ]),
        And([tolerant(2, "wordsplitnyc"), exact("world", True)]),
        tolerant(2, "wordsplitnycworld", True),
    ])


def test_query_kind_constructors():
    assert QueryKind.exact("hey").is_exact()
    assert not QueryKind.exact("hey").is_tolerant()
    assert QueryKind.tolerant(1, "friends").is_tolerant()
    assert QueryKind.exact_with_typo(2, "hey").typo == 2
    assert QueryKind.exact("hey") != QueryKind.tolerant(0, "hey")


def test_single_child_collapses():
    leaf = exact("hey")
    assert make_and([leaf]) == leaf
    assert make_or(True, [leaf]) == leaf
    assert make_consecutive([leaf]) == leaf


def test_multiple_children_wrap():
    assert make_and([exact("a"), exact("b")]) == And([exact("a"), exact("b")])
    assert make_or(True, [exact("a"), exact("b")]) == Or(True, [exact("a"), exact("b")])
    assert make_or(True, [exact("a"), exact("b")]) != Or(False, [exact("a"), exact("b")])


def test_phrase():
    assert phrase(["hey", "friends"]) == Consecutive([exact("hey"), exact("friends")])
    assert phrase(["wooop"]) == exact("wooop")


def test_pretty():
    tree = Or(True, [
        exact("hey"),
        Or(False, [
            And([exact("hey"), tolerant(1, "friend", True)]),
            Consecutive([exact("a"), exact("b")]),
        ]),
    ])
    expected = (
        "OR(WORD)\n"
        '  Exact { word: "hey" }\n'
        "  OR\n"
        "    AND\n"
        '      Exact { word: "hey" }\n'
        '      PrefixTolerant { word: "friend", max typo: 1 }\n'
        "    CONSECUTIVE\n"
        '      Exact { word: "a" }\n'
        '      Exact { word: "b" }\n'
    )
    assert tree.pretty() == expected


def test_fetching_words():
    expected = {
        ("word", 0, False),
        ("nyc", 0, False),
        ("wordsplit", 2, False),
        ("wordsplitnycworld", 2, True),
        ("nature", 0, False),
        ("new", 0, False),
        ("city", 0, False),
        ("world", 1, True),
        ("york", 0, False),
        ("split", 0, False),
        ("nycworld", 1, True),
        ("earth", 0, False),
        ("wordsplitnyc", 2, False),
        ("world", 0, True),
    }
    assert fetch_queries(fetching_words_tree()) == expected


def test_fetch_queries_exact_with_typo_counts_zero():
    tree = QueryOp(Query(prefix=False, kind=QueryKind.exact_with_typo(2, "hey")))
    assert fetch_queries(tree) == {("hey", 0, False)}


def test_maximum_typo():
    tree = Or(False, [
        And([exact("hey"), tolerant(1, "friends")]),
        tolerant(2, "heyfriends"),
        Consecutive([tolerant(1, "aaaaa"), tolerant(2, "bbbbbbbbb")]),
    ])
    assert maximum_typo(tree) == 3
    assert maximum_typo(Or(False, [])) == 0


def test_maximum_proximity():
    tree = And([exact("a"), Consecutive([exact("b"), exact("c")]), exact("d")])
    assert maximum_proximity(tree) == 14
    nested = Or(False, [tree, And([exact("x"), exact("y")])])
    assert maximum_proximity(nested) == 14
    assert maximum_proximity(And([])) == 0


def test_matching_words():
    tree = Or(False, [tolerant(1, "hello"), exact("wor", prefix=True)])
    matching = MatchingWords.from_query_tree(tree)
    assert matching.matches("hello")
    assert matching.matches("helo")
    assert not matching.matches("hxllx")
    assert matching.matches("world")
    assert not matching.matches("planet")


def test_matching_words_exact_not_prefix():
    matching = MatchingWords.from_query_tree(exact("wor"))
    assert matching.matches("wor")
    assert not matching.matches("world")


def test_empty_matching_words():
    assert not MatchingWords().matches("anything")


def test_unknown_operation_rejected():
    with pytest.raises(TypeError):
        maximum_typo(object())


@given(st.text(min_size=1, max_size=12), st.booleans(), st.integers(0, 2))
def test_single_query_tree_invariants(word, prefix, typo):
    leaf = tolerant(typo, word, prefix)
    assert make_or(False, [leaf]) == leaf
    assert fetch_queries(leaf) == {(word, typo, prefix)}
    assert maximum_typo(leaf) == typo
    assert maximum_proximity(leaf) == 0
    assert MatchingWords.from_query_tree(leaf).matches(word)