"""In-memory facet values database, its level trees and the iterators over them."""

from __future__ import annotations

import enum
import sys
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

__all__ = [
    "FacetType",
    "BoundKind",
    "Bound",
    "FacetStore",
    "FacetIter",
    "Facets",
    "facet_range",
    "facet_rev_range",
]

F64_MIN = -sys.float_info.max
F64_MAX = sys.float_info.max

NumberEntry = tuple[tuple[int, int, float, float], set[int]]


class FacetType(enum.Enum):
    """The kind of values a faceted field holds."""

    STRING = "string"
    NUMBER = "number"


class BoundKind(enum.Enum):
    INCLUDED = "included"
    EXCLUDED = "excluded"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class Bound:
    """One end of a range of facet values."""

    kind: BoundKind
    value: float | None = None

    def __post_init__(self) -> None:
        if self.kind is BoundKind.UNBOUNDED:
            if self.value is not None:
                raise ValueError("an unbounded bound carries no value")
        elif self.value is None:
            raise ValueError(f"an {self.kind.value} bound needs a value")

    @classmethod
    def included(cls, value: float) -> Bound:
        return cls(BoundKind.INCLUDED, float(value))

    @classmethod
    def excluded(cls, value: float) -> Bound:
        return cls(BoundKind.EXCLUDED, float(value))

    @classmethod
    def unbounded(cls) -> Bound:
        return cls(BoundKind.UNBOUNDED)

    def _accepts_right(self, right: float) -> bool:
        if self.kind is BoundKind.INCLUDED:
            return right <= self.value  # type: ignore[operator]
        if self.kind is BoundKind.EXCLUDED:
            return right < self.value  # type: ignore[operator]
        return True

    def _accepts_left(self, left: float) -> bool:
        if self.kind is BoundKind.INCLUDED:
            return left >= self.value  # type: ignore[operator]
        if self.kind is BoundKind.EXCLUDED:
            return left > self.value  # type: ignore[operator]
        return True


class FacetStore:
    """Facet values of every field, with the documents ids associated to them.

    Number values live in levels: level 0 holds one entry per value, higher
    levels hold groups of the level below, each keyed by its bounds.
    """

    def __init__(self) -> None:
        self._numbers: dict[tuple[int, int], dict[tuple[float, float], set[int]]] = {}
        self._strings: dict[tuple[int, str], set[int]] = {}
        self._faceted_documents_ids: dict[int, set[int]] = {}

    def add_number(self, field_id: int, value: float, docids: Iterable[int]) -> None:
        """Associate ``docids`` with a number value at level 0."""
        value = float(value)
        level = self._numbers.setdefault((field_id, 0), {})
        level.setdefault((value, value), set()).update(docids)

    def add_string(self, field_id: int, value: str, docids: Iterable[int]) -> None:
        """Associate ``docids`` with a string value."""
        self._strings.setdefault((field_id, value), set()).update(docids)

    def string_docids(self, field_id: int, value: str) -> set[int]:
        return set(self._strings.get((field_id, value), ()))

    def string_values(self, field_id: int) -> list[tuple[str, set[int]]]:
        """Return the string values of a field in ascending order."""
        return sorted(
            (value, set(docids))
            for (fid, value), docids in self._strings.items()
            if fid == field_id
        )

    def number_entries(self, field_id: int, level: int) -> list[NumberEntry]:
        """Return the entries of a level, ordered by their bounds."""
        entries = self._numbers.get((field_id, level), {})
        return [
            ((field_id, level, left, right), set(entries[(left, right)]))
            for left, right in sorted(entries)
        ]

    def highest_level(self, field_id: int) -> int | None:
        levels = [level for fid, level in self._numbers if fid == field_id]
        return max(levels, default=None)

    def clear_number_levels(self, field_id: int) -> None:
        """Remove every number level of a field except level 0."""
        for key in [k for k in self._numbers if k[0] == field_id and k[1] >= 1]:
            del self._numbers[key]

    def _field_entries_count(self, field_id: int) -> int:
        numbers = sum(
            len(entries) for (fid, _), entries in self._numbers.items() if fid == field_id
        )
        strings = sum(1 for fid, _ in self._strings if fid == field_id)
        return numbers + strings

    def _put_number_level_entry(
        self, field_id: int, level: int, left: float, right: float, docids: set[int]
    ) -> None:
        entries = self._numbers.setdefault((field_id, level), {})
        if (left, right) in entries:
            raise ValueError("invalid facet level merging")
        entries[(left, right)] = set(docids)

    def compute_number_levels(
        self, field_id: int, level_group_size: int, min_level_size: int
    ) -> list[tuple[int, float, float]]:
        """Build the levels above level 0 and return the ``(level, left, right)`` written.

        Level ``n`` groups ``level_group_size ** n`` level 0 entries, and levels are
        built while they would hold at least ``min_level_size`` entries.
        """
        if level_group_size < 1 or min_level_size < 1:
            raise ValueError("group and level sizes must be positive")
        first_level_size = self._field_entries_count(field_id)
        level0 = self.number_entries(field_id, 0)

        pending: list[tuple[int, float, float, set[int]]] = []
        level = 1
        while first_level_size // (group_size := level_group_size**level) >= min_level_size:
            left = right = 0.0
            group_docids: set[int] = set()
            for i, ((_, _, value, _), docids) in enumerate(level0):
                if i == 0:
                    left = value
                elif i % group_size == 0:
                    pending.append((level, left, right, group_docids))
                    group_docids = set()
                    left = value
                group_docids |= docids
                right = value
            if group_docids:
                pending.append((level, left, right, group_docids))
            level += 1

        for lvl, left, right, docids in pending:
            self._put_number_level_entry(field_id, lvl, left, right, docids)
        return [(lvl, left, right) for lvl, left, right, _ in pending]

    def compute_faceted_documents_ids(self, field_id: int) -> set[int]:
        """Return the union of every documents ids stored under the field."""
        result: set[int] = set()
        for (fid, _), entries in self._numbers.items():
            if fid == field_id:
                for docids in entries.values():
                    result |= docids
        for (fid, _), docids in self._strings.items():
            if fid == field_id:
                result |= docids
        return result

    def faceted_documents_ids(self, field_id: int) -> set[int]:
        return set(self._faceted_documents_ids.get(field_id, ()))

    def set_faceted_documents_ids(self, field_id: int, docids: Iterable[int]) -> None:
        self._faceted_documents_ids[field_id] = set(docids)


def facet_range(
    store: FacetStore, field_id: int, level: int, left: Bound, right: Bound
) -> Iterator[NumberEntry]:
    """Yield the entries of a level from ``left``, stopping at the first past ``right``."""
    for key, docids in store.number_entries(field_id, level):
        entry_left, entry_right = key[2], key[3]
        if not left._accepts_left(entry_left):
            continue
        if not right._accepts_right(entry_right):
            return
        yield key, docids


def facet_rev_range(
    store: FacetStore, field_id: int, level: int, left: Bound, right: Bound
) -> Iterator[NumberEntry]:
    """Yield, in reverse, the entries of a level within ``left`` and ``right``."""
    for key, docids in reversed(store.number_entries(field_id, level)):
        if left._accepts_left(key[2]) and right._accepts_right(key[3]):
            yield key, docids


class FacetIter:
    """Iterates over the number values of a field and the documents holding them.

    Walks down the levels, only entering the groups containing wanted documents.
    When reducing, a document is returned with its first value only.
    """

    def __init__(
        self,
        store: FacetStore,
        field_id: int,
        documents_ids: Iterable[int],
        must_reduce: bool = True,
        ascending: bool = True,
    ) -> None:
        self.store = store
        self.field_id = field_id
        self.must_reduce = must_reduce
        self.ascending = ascending
        highest = store.highest_level(field_id) or 0
        first = self._range(highest, Bound.unbounded(), Bound.unbounded())
        self._level_iters: list[tuple[set[int], Iterator[NumberEntry]]] = [
            (set(documents_ids), first)
        ]

    @classmethod
    def new_reducing(cls, store: FacetStore, field_id: int, documents_ids: Iterable[int]) -> FacetIter:
        return cls(store, field_id, documents_ids, must_reduce=True, ascending=True)

    @classmethod
    def new_reverse_reducing(
        cls, store: FacetStore, field_id: int, documents_ids: Iterable[int]
    ) -> FacetIter:
        return cls(store, field_id, documents_ids, must_reduce=True, ascending=False)

    @classmethod
    def new_non_reducing(
        cls, store: FacetStore, field_id: int, documents_ids: Iterable[int]
    ) -> FacetIter:
        return cls(store, field_id, documents_ids, must_reduce=False, ascending=True)

    def _range(self, level: int, left: Bound, right: Bound) -> Iterator[NumberEntry]:
        walk = facet_range if self.ascending else facet_rev_range
        return walk(self.store, self.field_id, level, left, right)

    def __iter__(self) -> FacetIter:
        return self

    def __next__(self) -> tuple[float, set[int]]:
        while self._level_iters:
            documents_ids, entries = self._level_iters[-1]
            descended = False
            for (_, level, left, right), docids in entries:
                # Everything wanted at this level was found in the deeper levels.
                if not documents_ids:
                    break
                docids &= documents_ids
                if not docids:
                    continue
                if self.must_reduce:
                    documents_ids -= docids
                if level == 0:
                    return left, docids
                deeper = self._range(level - 1, Bound.included(left), Bound.included(right))
                self._level_iters.append((docids, deeper))
                descended = True
                break
            if not descended:
                self._level_iters.pop()
        raise StopIteration


class Facets:
    """Recomputes the faceted documents ids and number levels of every faceted field."""

    def __init__(
        self,
        store: FacetStore,
        faceted_fields: Mapping[int, FacetType | str],
        level_group_size: int = 4,
        min_level_size: int = 5,
    ) -> None:
        if level_group_size < 1:
            raise ValueError("the level group size must be positive")
        if min_level_size < 1:
            raise ValueError("the minimum level size must be positive")
        self.store = store
        self.faceted_fields = {fid: FacetType(ftype) for fid, ftype in faceted_fields.items()}
        self.level_group_size = max(level_group_size, 2)
        self.min_level_size = min_level_size

    def execute(self) -> None:
        for field_id, facet_type in self.faceted_fields.items():
            if facet_type is FacetType.NUMBER:
                self.store.clear_number_levels(field_id)
                documents_ids = self.store.compute_faceted_documents_ids(field_id)
                self.store.compute_number_levels(
                    field_id, self.level_group_size, self.min_level_size
                )
            else:
                documents_ids = self.store.compute_faceted_documents_ids(field_id)
            self.store.set_faceted_documents_ids(field_id, documents_ids)