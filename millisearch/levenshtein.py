"""Levenshtein automata used to find words within a number of typos."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

WordDerivationsCache = dict[tuple[str, bool, int], list[tuple[str, int]]]


@dataclass(frozen=True)
class Distance:
    """An edit distance: exact when within the automaton's limit, a lower bound otherwise."""

    value: int
    exact: bool = True

    def __int__(self) -> int:
        return self.value


class Dfa:
    """Matches words within ``max_distance`` edits (adjacent transpositions cost one)."""

    def __init__(self, word: str, max_distance: int, is_prefix: bool) -> None:
        if max_distance < 0:
            raise ValueError("the maximum distance cannot be negative")
        self.word = word
        self.max_distance = max_distance
        self.is_prefix = is_prefix

    def __repr__(self) -> str:
        return (
            f"Dfa(word={self.word!r}, max_distance={self.max_distance}, "
            f"is_prefix={self.is_prefix})"
        )

    def eval(self, word: str) -> Distance:
        """Return the distance between the automaton's word and ``word``."""
        distance = self._distance(word)
        if distance <= self.max_distance:
            return Distance(distance)
        return Distance(self.max_distance + 1, exact=False)

    def matches(self, word: str) -> bool:
        return self.eval(word).exact

    def _distance(self, candidate: str) -> int:
        query = self.word
        limit = self.max_distance
        previous2: list[int] | None = None
        previous = list(range(len(query) + 1))
        best = previous[-1]
        last_char: str | None = None

        for j, char in enumerate(candidate, 1):
            row = [j]
            for i, query_char in enumerate(query, 1):
                cost = 0 if query_char == char else 1
                value = min(previous[i] + 1, row[i - 1] + 1, previous[i - 1] + cost)
                if (
                    previous2 is not None
                    and i > 1
                    and query_char == last_char
                    and query[i - 2] == char
                ):
                    value = min(value, previous2[i - 2] + 1)
                row.append(value)

            best = min(best, row[-1])
            if min(row) > limit and min(previous) > limit:
                # No later cell can come back under the limit.
                return best if self.is_prefix else limit + 1
            previous2, previous = previous, row
            last_char = char

        return best if self.is_prefix else previous[-1]


def build_dfa(word: str, typos: int, is_prefix: bool) -> Dfa:
    """Build an automaton allowing 0, 1 or at most 2 typos."""
    if typos < 0:
        raise ValueError("the number of typos cannot be negative")
    return Dfa(word, min(typos, 2), is_prefix)


def _sort_key(candidate: str | bytes) -> bytes:
    return candidate if isinstance(candidate, bytes) else candidate.encode("utf-8")


def word_derivations(
    word: str,
    is_prefix: bool,
    max_typo: int,
    words: Iterable[str | bytes],
    cache: WordDerivationsCache,
) -> list[tuple[str, int]]:
    """Return the words of ``words`` reachable from ``word``, with their distances.

    Results are in byte order and are memoised in ``cache``.
    """
    key = (word, is_prefix, max_typo)
    cached = cache.get(key)
    if cached is not None:
        return cached

    dfa = build_dfa(word, max_typo, is_prefix)
    derived: list[tuple[str, int]] = []
    for candidate in sorted(words, key=_sort_key):
        text = candidate.decode("utf-8") if isinstance(candidate, bytes) else candidate
        distance = dfa.eval(text)
        if distance.exact:
            derived.append((text, distance.value))

    cache[key] = derived
    return derived