"""Jump tables for accelerated correspondence search.

For every index i of a reference scan, the jump table stores the nearest
index in each sweep direction whose range is strictly bigger, and the
nearest whose range is strictly smaller, than ranges[i]:

    up_bigger[i]    = min{ j > i : r[j] > r[i] }   (n if none)
    up_smaller[i]   = min{ j > i : r[j] < r[i] }   (n if none)
    down_bigger[i]  = max{ j < i : r[j] > r[i] }   (-1 if none)
    down_smaller[i] = max{ j < i : r[j] < r[i] }   (-1 if none)

All points strictly between i and up_bigger[i] therefore have range <= r[i],
which lets the search skip a whole run of points with a single bound check.

The table is stored as one (n, 4) integer array so the search loop indexes
into a single block instead of per-point objects.

Author: Li-Ta Hsu
Date: December 2025
"""

from dataclasses import dataclass

import numpy as np

from .types import Scan

UP_BIGGER = 0
UP_SMALLER = 1
DOWN_BIGGER = 2
DOWN_SMALLER = 3


@dataclass(frozen=True, eq=False)
class JumpTable:
    """
    Read-only jump table over one reference scan.

    Attributes:
        scan: The reference scan the table was built from.
        pointers: Integer array of shape (n, 4); columns are
                  [up_bigger, up_smaller, down_bigger, down_smaller].

    Notes:
        - A table is only valid for `scan`. Correspondences computed with it
          index into `scan` and nothing else.
        - Rebuild the table whenever the reference scan changes.
    """

    scan: Scan
    pointers: np.ndarray

    def __post_init__(self) -> None:
        pointers = np.array(self.pointers, dtype=np.int64, copy=True)
        if pointers.shape != (len(self.scan), 4):
            raise ValueError(
                f"pointers must have shape ({len(self.scan)}, 4), got {pointers.shape}"
            )
        pointers.setflags(write=False)
        object.__setattr__(self, "pointers", pointers)

    def __len__(self) -> int:
        return int(self.pointers.shape[0])

    @property
    def up_bigger(self) -> np.ndarray:
        return self.pointers[:, UP_BIGGER]

    @property
    def up_smaller(self) -> np.ndarray:
        return self.pointers[:, UP_SMALLER]

    @property
    def down_bigger(self) -> np.ndarray:
        return self.pointers[:, DOWN_BIGGER]

    @property
    def down_smaller(self) -> np.ndarray:
        return self.pointers[:, DOWN_SMALLER]

    def belongs_to(self, scan: Scan) -> bool:
        """True if this table was built from `scan` (identity, not equality)."""
        return self.scan is scan


def build_jump_table(scan: Scan) -> JumpTable:
    """
    Build the jump table of a reference scan.

    Each pointer is found by chasing already-computed pointers of the
    neighbouring index: if r[j] <= r[i], every index up to up_bigger[j] is
    also <= r[i] and can be skipped. Every pointer therefore advances
    monotonically and the whole table costs O(n) amortized.

    Args:
        scan: Reference scan, ordered by non-decreasing bearing.

    Returns:
        JumpTable over `scan`.

    Raises:
        ValueError: If the scan bearings decrease somewhere.

    Examples:
        >>> scan = Scan.from_polar(np.array([1.0, 2.0, 1.5, 3.0]),
        ...                        np.radians([0.0, 10.0, 20.0, 30.0]))
        >>> build_jump_table(scan).up_bigger
        array([1, 3, 3, 4])
    """
    bearings = scan.bearings
    if bearings.shape[0] > 1 and np.any(np.diff(bearings) < 0):
        raise ValueError(
            "reference scan must be ordered by non-decreasing bearing"
        )

    r = scan.ranges.tolist()
    n = len(r)

    up_bigger = [n] * n
    up_smaller = [n] * n
    down_bigger = [-1] * n
    down_smaller = [-1] * n

    for i in range(n - 2, -1, -1):
        j = i + 1
        while j < n and r[j] <= r[i]:
            j = up_bigger[j]
        up_bigger[i] = j

        j = i + 1
        while j < n and r[j] >= r[i]:
            j = up_smaller[j]
        up_smaller[i] = j

    for i in range(1, n):
        j = i - 1
        while j >= 0 and r[j] <= r[i]:
            j = down_bigger[j]
        down_bigger[i] = j

        j = i - 1
        while j >= 0 and r[j] >= r[i]:
            j = down_smaller[j]
        down_smaller[i] = j

    pointers = np.column_stack([up_bigger, up_smaller, down_bigger, down_smaller])
    return JumpTable(scan=scan, pointers=pointers.reshape(n, 4))
