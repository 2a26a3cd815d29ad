"""Query trees: the operations a search query is turned into."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .levenshtein import Dfa, build_dfa

__all__ = [
    "QueryKind",
    "Query",
    "Operation",
    "And",
    "Consecutive",
    "Or",
    "QueryOp",
    "MatchingWords",
    "make_and",
    "make_or",
    "make_consecutive",
    "phrase",
    "fetch_queries",
    "maximum_typo",
    "maximum_proximity",
]

# Proximity cost added between two words of an AND operation.
_MAX_PAIR_PROXIMITY = 7


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class QueryKind:
    """How a word must match: exactly, or tolerating up to ``typo`` typos.

    For an exact kind, ``typo`` is the number of typos the word originally had.
    """

    word: str
    typo: int = 0
    exact: bool = True

    @classmethod
    def exact_word(cls, word: str) -> QueryKind:
        return cls(word=word, typo=0, exact=True)

    @classmethod
    def exact(cls, word: str) -> QueryKind:  # type: ignore[override]
        return cls(word=word, typo=0, exact=True)

    @classmethod
    def exact_with_typo(cls, original_typo: int, word: str) -> QueryKind:
        return cls(word=word, typo=original_typo, exact=True)

    @classmethod
    def tolerant(cls, typo: int, word: str) -> QueryKind:
        return cls(word=word, typo=typo, exact=False)

    def is_tolerant(self) -> bool:
        return not self.exact

    def is_exact(self) -> bool:
        return self.exact


@dataclass(frozen=True)
class Query:
    """A single word to look up, possibly as a prefix."""

    prefix: bool
    kind: QueryKind

    def __str__(self) -> str:
        name = "Prefix" if self.prefix else ""
        word = _quote(self.kind.word)
        if self.kind.is_exact():
            return f"{name}Exact {{ word: {word} }}"
        return f"{name}Tolerant {{ word: {word}, max typo: {self.kind.typo} }}"


class Operation:
    """Base of every node of a query tree."""

    def pretty(self) -> str:
        """Return an indented, one node per line, rendering of the tree."""
        return "".join(self._pretty_lines(0))

    def _pretty_lines(self, depth: int) -> Iterator[str]:
        raise NotImplementedError

    def _children_lines(self, children: tuple[Operation, ...], depth: int) -> Iterator[str]:
        for child in children:
            yield from child._pretty_lines(depth + 1)


def _as_tuple(children: Iterable[Operation]) -> tuple[Operation, ...]:
    return tuple(children)


@dataclass(frozen=True)
class And(Operation):
    """All children must match."""

    children: tuple[Operation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", _as_tuple(self.children))

    def _pretty_lines(self, depth: int) -> Iterator[str]:
        yield " " * (depth * 2) + "AND\n"
        yield from self._children_lines(self.children, depth)


@dataclass(frozen=True)
class Consecutive(Operation):
    """All children must match, one right after the other."""

    children: tuple[Operation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", _as_tuple(self.children))

    def _pretty_lines(self, depth: int) -> Iterator[str]:
        yield " " * (depth * 2) + "CONSECUTIVE\n"
        yield from self._children_lines(self.children, depth)


@dataclass(frozen=True)
class Or(Operation):
    """Any child may match; ``word_branch`` marks the optional-words branch."""

    word_branch: bool
    children: tuple[Operation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", _as_tuple(self.children))

    def _pretty_lines(self, depth: int) -> Iterator[str]:
        label = "OR(WORD)" if self.word_branch else "OR"
        yield " " * (depth * 2) + label + "\n"
        yield from self._children_lines(self.children, depth)


@dataclass(frozen=True)
class QueryOp(Operation):
    """A leaf of the tree holding a single query."""

    query: Query

    def _pretty_lines(self, depth: int) -> Iterator[str]:
        yield " " * (depth * 2) + str(self.query) + "\n"


def make_and(ops: Iterable[Operation]) -> Operation:
    """Build an AND node, or return the only operation when there is one."""
    ops = list(ops)
    return ops[0] if len(ops) == 1 else And(ops)


def make_or(word_branch: bool, ops: Iterable[Operation]) -> Operation:
    """Build an OR node, or return the only operation when there is one."""
    ops = list(ops)
    return ops[0] if len(ops) == 1 else Or(word_branch, ops)


def make_consecutive(ops: Iterable[Operation]) -> Operation:
    """Build a CONSECUTIVE node, or return the only operation when there is one."""
    ops = list(ops)
    return ops[0] if len(ops) == 1 else Consecutive(ops)


def phrase(words: Iterable[str]) -> Operation:
    """Build the operation matching ``words`` exactly and consecutively."""
    return make_consecutive(
        QueryOp(Query(prefix=False, kind=QueryKind.exact(word))) for word in words
    )


def fetch_queries(tree: Operation) -> set[tuple[str, int, bool]]:
    """Return every ``(word, typo, is_prefix)`` that can match the tree."""
    queries: set[tuple[str, int, bool]] = set()
    stack = [tree]
    while stack:
        op = stack.pop()
        if isinstance(op, QueryOp):
            kind = op.query.kind
            typo = 0 if kind.is_exact() else kind.typo
            queries.add((kind.word, typo, op.query.prefix))
        else:
            stack.extend(op.children)  # type: ignore[attr-defined]
    return queries


def maximum_typo(operation: Operation) -> int:
    """Return the maximum number of typos the operation allows."""
    if isinstance(operation, Or):
        return max((maximum_typo(op) for op in operation.children), default=0)
    if isinstance(operation, (And, Consecutive)):
        return sum(maximum_typo(op) for op in operation.children)
    if isinstance(operation, QueryOp):
        return operation.query.kind.typo
    raise TypeError(f"unknown operation {operation!r}")


def maximum_proximity(operation: Operation) -> int:
    """Return the maximum proximity the operation allows."""
    if isinstance(operation, Or):
        return max((maximum_proximity(op) for op in operation.children), default=0)
    if isinstance(operation, And):
        total = sum(maximum_proximity(op) for op in operation.children)
        return total + max(len(operation.children) - 1, 0) * _MAX_PAIR_PROXIMITY
    if isinstance(operation, (QueryOp, Consecutive)):
        return 0
    raise TypeError(f"unknown operation {operation!r}")


class MatchingWords:
    """The set of automata telling whether a word matches a query tree."""

    def __init__(self, dfas: Iterable[tuple[Dfa, int]] | None = None) -> None:
        self.dfas: list[tuple[Dfa, int]] = list(dfas or ())

    @classmethod
    def from_query_tree(cls, tree: Operation) -> MatchingWords:
        return cls(
            (build_dfa(word, typo, prefix), typo)
            for word, typo, prefix in fetch_queries(tree)
        )

    def matches(self, word: str) -> bool:
        """Return True if ``word`` is matched by one of the automata."""
        for dfa, typo in self.dfas:
            distance = dfa.eval(word)
            if distance.exact and distance.value <= typo:
                return True
        return False