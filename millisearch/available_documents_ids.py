"""Enumeration of document ids that are not yet used."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

U32_MAX = 2**32 - 1


def available_documents_ids(documents_ids: Iterable[int]) -> Iterator[int]:
    """Yield, in ascending order, every 32-bit id not in ``documents_ids``."""
    used = sorted(set(documents_ids))
    if used and (used[0] < 0 or used[-1] > U32_MAX):
        raise ValueError("document ids must fit in an unsigned 32-bit integer")
    return _generate(used)


def _generate(used: list[int]) -> Iterator[int]:
    next_free = 0
    for docid in used:
        yield from range(next_free, docid)
        next_free = docid + 1
    yield from range(next_free, U32_MAX + 1)