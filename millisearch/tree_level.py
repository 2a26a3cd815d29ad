"""Bounded level numbers for the facet level trees."""

from __future__ import annotations

from dataclasses import dataclass

# Just below the lowest printable character (space, 32).
MAX_VALUE = 31


class LevelTooHighError(ValueError):
    """Raised when a tree level exceeds the maximum allowed value."""

    def __init__(self, level: int) -> None:
        super().__init__(f"tree level {level} is higher than the maximum {MAX_VALUE}")
        self.level = level


@dataclass(frozen=True, order=True)
class TreeLevel:
    """A tree level between 0 and 31 inclusive."""

    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError("a tree level must be an integer")
        if self.value < 0:
            raise ValueError(f"tree level {self.value} is negative")
        if self.value > MAX_VALUE:
            raise LevelTooHighError(self.value)

    @classmethod
    def max_value(cls) -> TreeLevel:
        return cls(MAX_VALUE)

    @classmethod
    def min_value(cls) -> TreeLevel:
        return cls(0)

    def saturating_sub(self, lhs: int) -> TreeLevel:
        """Subtract ``lhs``, stopping at zero."""
        return TreeLevel(max(self.value - lhs, 0))

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)