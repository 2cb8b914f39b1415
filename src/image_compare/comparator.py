"""Naive per-channel absolute-difference comparator.

Score for two PixelSources A and B over a common grid of w x h pixels:

    total = sum over (x, y) of |R_A - R_B| + |G_A - G_B| + |B_A - B_B|
    score = total              (normalization="sum")
    score = total / (w * h)    (normalization="mean", default)

0.0 means pixel-identical; the range is unbounded above.  A grid with
zero area scores 0.0.

Reconciliation (when sizes differ), fixed per Comparator instance:
    - "nearest" (default): grid is (min width, min height); each source
      not already at that size is sampled nearest-neighbour onto it, so
      the whole image contributes.
    - "crop": same grid; both sources are cut to the top-left
      subregion(0, w, 0, h).
    - "strict": DimensionMismatchError.

A calibration batch must reuse one Comparator so that every pair gets
the same policy and normalization.

Usage:
    from src.image_compare.comparator import Comparator, compare
    score = compare(a, b)
    score = Comparator(policy="crop", normalization="sum").compare(a, b)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import DimensionMismatchError
from .pixel_source import PixelSource, ResampledPixelSource

logger = logging.getLogger(__name__)

POLICIES = ("nearest", "crop", "strict")
NORMALIZATIONS = ("mean", "sum")


@dataclass(frozen=True)
class Comparator:
    """Stateless dissimilarity scorer.

    Parameters
    ----------
    policy : str
        Reconciliation policy for mismatched sizes: "nearest", "crop"
        or "strict".
    normalization : str
        "mean" (divide by grid area) or "sum" (raw total).
    vectorized : bool
        Accumulate with numpy over ``to_array()`` (default) instead of
        the per-pixel accessor loop.  Both give identical results.
    """

    policy: str = "nearest"
    normalization: str = "mean"
    vectorized: bool = True

    def __post_init__(self) -> None:
        if self.policy not in POLICIES:
            raise ValueError(f"policy must be one of {POLICIES}, got {self.policy!r}")
        if self.normalization not in NORMALIZATIONS:
            raise ValueError(
                f"normalization must be one of {NORMALIZATIONS}, got {self.normalization!r}"
            )

    def grid_size(self, a: PixelSource, b: PixelSource) -> Tuple[int, int]:
        """(width, height) of the grid the two sources are compared on."""
        if a.size == b.size:
            return a.size
        if self.policy == "strict":
            raise DimensionMismatchError(
                f"cannot compare {a.width}x{a.height} with {b.width}x{b.height} "
                f"under strict policy"
            )
        return (min(a.width, b.width), min(a.height, b.height))

    def reconcile(
        self, a: PixelSource, b: PixelSource
    ) -> Tuple[PixelSource, PixelSource]:
        """Return both sources as views over the common grid."""
        w, h = self.grid_size(a, b)
        if a.size == b.size:
            return a, b

        logger.debug("Reconciling %r and %r onto %dx%d (%s)", a, b, w, h, self.policy)
        if self.policy == "crop":
            return a.subregion(0, w, 0, h), b.subregion(0, w, 0, h)

        def fit(src: PixelSource) -> PixelSource:
            if src.size == (w, h):
                return src
            return ResampledPixelSource(src, w, h)

        return fit(a), fit(b)

    def total_difference(self, a: PixelSource, b: PixelSource) -> int:
        """Sum of per-channel absolute differences over the reconciled grid."""
        a, b = self.reconcile(a, b)
        if self.vectorized:
            return _accumulate_arrays(a.to_array(), b.to_array())
        return _accumulate_loop(a, b)

    def compare(self, a: PixelSource, b: PixelSource) -> float:
        """Dissimilarity score of ``a`` and ``b`` (>= 0.0, 0.0 when identical).

        Raises
        ------
        DimensionMismatchError
            Sizes differ and policy is "strict".
        OutOfBoundsError
            Propagated from a source if reconciliation asks for an
            invalid region.
        """
        w, h = self.grid_size(a, b)
        area = w * h
        if area == 0:
            return 0.0

        total = self.total_difference(a, b)
        if self.normalization == "mean":
            return total / area
        return float(total)


def _accumulate_loop(a: PixelSource, b: PixelSource) -> int:
    total = 0
    for y in range(a.height):
        for x in range(a.width):
            total += (
                abs(a.red(x, y) - b.red(x, y))
                + abs(a.green(x, y) - b.green(x, y))
                + abs(a.blue(x, y) - b.blue(x, y))
            )
    return total


def _accumulate_arrays(a: np.ndarray, b: np.ndarray) -> int:
    # int16 holds [-255, 255]; int64 sum avoids overflow on large images
    diff = np.abs(a.astype(np.int16) - b.astype(np.int16))
    return int(diff.sum(dtype=np.int64))


_DEFAULT = Comparator()


def compare(a: PixelSource, b: PixelSource) -> float:
    """Score ``a`` against ``b`` with the default Comparator (nearest, mean)."""
    return _DEFAULT.compare(a, b)
