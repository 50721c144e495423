"""
Passive-region masks.

Three per-element 0/1 flags mark elements that are not design variables:

- void   (xPassive0): density fixed at zero; in imported geometry these are the
  only elements that carry no heat load.
- solid  (xPassive1): fixed solid; in imported geometry their nodes are clamped.
- loaded (xPassive2): always-loaded region, excluded from design only.

The masks must be pairwise disjoint. The volume-constraint denominator
subtracts the three counts independently, so an overlap would be counted
twice; overlaps are therefore rejected on construction.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np


@dataclass
class PassiveMasks:
    """Disjoint void / solid / loaded element flags.

    Attributes
    ----------
    void, solid, loaded : np.ndarray, shape (n_elements,)
        0/1 flags (stored as float64).
    """
    void: np.ndarray
    solid: np.ndarray
    loaded: np.ndarray

    def __post_init__(self) -> None:
        self.void = _as_flags(self.void, "void")
        self.solid = _as_flags(self.solid, "solid")
        self.loaded = _as_flags(self.loaded, "loaded")

        n = self.void.size
        if self.solid.size != n or self.loaded.size != n:
            raise ValueError(
                f"Passive masks differ in length: void={n}, solid={self.solid.size}, "
                f"loaded={self.loaded.size}"
            )

        overlap = (self.void + self.solid + self.loaded) > 1
        if np.any(overlap):
            first = int(np.flatnonzero(overlap)[0])
            raise ValueError(
                f"Passive masks overlap on {int(overlap.sum())} element(s), first at element {first}; "
                f"void/solid/loaded regions must be disjoint"
            )

    @classmethod
    def empty(cls, n_elements: int) -> "PassiveMasks":
        """No passive elements: the whole domain is designable."""
        zeros = np.zeros(int(n_elements))
        return cls(zeros, zeros.copy(), zeros.copy())

    @property
    def n_elements(self) -> int:
        return self.void.size

    @property
    def designable(self) -> np.ndarray:
        """Boolean mask of elements with every flag clear."""
        return (self.void == 0) & (self.solid == 0) & (self.loaded == 0)

    def check_size(self, n_elements: int) -> None:
        if self.n_elements != n_elements:
            raise ValueError(
                f"Passive masks hold {self.n_elements} elements, mesh has {n_elements}"
            )


def _as_flags(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    bad = (arr != 0.0) & (arr != 1.0)
    if np.any(bad):
        first = int(np.flatnonzero(bad)[0])
        raise ValueError(
            f"Passive mask '{name}' must contain only 0/1, got {arr[first]} at element {first}"
        )
    return arr
