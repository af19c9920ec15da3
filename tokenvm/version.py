"""Semantic version of the token VM."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Semantic:
    """A major.minor.patch version."""

    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"v{self.major}.{self.minor}.{self.patch}"

    def compare(self, other: Semantic) -> int:
        """Return -1, 0 or 1 as this version is older, equal or newer."""
        mine = (self.major, self.minor, self.patch)
        theirs = (other.major, other.minor, other.patch)
        return (mine > theirs) - (mine < theirs)


VERSION = Semantic(major=0, minor=0, patch=1)