"""PixelSource: read-only, dimension-bearing views over decoded images.

The Comparator only ever talks to ``PixelSource``; it never sees a
Pillow image, a numpy array or a torch tensor directly.  Each backend
gets a small adapter:

    - ArrayPixelSource: (H, W, 3) uint8 numpy array (decoder output)
    - TensorPixelSource: (3, H, W) torch tensor, float [0,1] or uint8
    - SubregionPixelSource: offset window into another source
    - ResampledPixelSource: nearest-neighbour view at another size

Coordinates:
    - (x, y) with x along width (columns), y along height (rows)
    - Origin at top-left, local to the view
    - Out-of-range reads raise OutOfBoundsError; nothing clamps or wraps

All sources are immutable.  Array-backed sources mark their buffers
read-only, so ``to_array()`` can hand out views without copying.
"""

from __future__ import annotations

import operator
from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np
import torch

from .errors import OutOfBoundsError

RED, GREEN, BLUE = 0, 1, 2


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class PixelSource(ABC):
    """Abstract read-only view over one decoded RGB image."""

    @property
    @abstractmethod
    def width(self) -> int:
        """Number of columns (>= 0)."""

    @property
    @abstractmethod
    def height(self) -> int:
        """Number of rows (>= 0)."""

    @abstractmethod
    def channel(self, x: int, y: int, c: int) -> int:
        """Return channel ``c`` (0=R, 1=G, 2=B) at (x, y) as an int in [0, 255].

        Implementations must call ``check_coords`` first.
        """

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)."""
        return (self.width, self.height)

    def red(self, x: int, y: int) -> int:
        return self.channel(x, y, RED)

    def green(self, x: int, y: int) -> int:
        return self.channel(x, y, GREEN)

    def blue(self, x: int, y: int) -> int:
        return self.channel(x, y, BLUE)

    def check_coords(self, x: int, y: int) -> None:
        """Raise OutOfBoundsError unless x, y are ints with 0 <= x < width, 0 <= y < height."""
        try:
            x, y = operator.index(x), operator.index(y)
        except TypeError:
            raise OutOfBoundsError(
                f"pixel coordinates must be integers, got ({x!r}, {y!r})"
            ) from None
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise OutOfBoundsError(
                f"pixel ({x}, {y}) outside {self.width}x{self.height} image"
            )

    def subregion(self, x: int, dx: int, y: int, dy: int) -> "PixelSource":
        """Return a view over the rectangle [x, x+dx) x [y, y+dy).

        Raises
        ------
        OutOfBoundsError
            If the rectangle is not fully contained in this source.
        """
        if x < 0 or dx < 0 or x + dx > self.width:
            raise OutOfBoundsError(
                f"subregion x=[{x}, {x + dx}) outside width {self.width}"
            )
        if y < 0 or dy < 0 or y + dy > self.height:
            raise OutOfBoundsError(
                f"subregion y=[{y}, {y + dy}) outside height {self.height}"
            )
        return SubregionPixelSource(self, x, dx, y, dy)

    def to_array(self) -> np.ndarray:
        """Materialise as an (H, W, 3) uint8 array.

        The default walks the channel accessors; array-backed sources
        override this with slicing.
        """
        out = np.empty((self.height, self.width, 3), dtype=np.uint8)
        for y in range(self.height):
            for x in range(self.width):
                out[y, x, RED] = self.red(x, y)
                out[y, x, GREEN] = self.green(x, y)
                out[y, x, BLUE] = self.blue(x, y)
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.width}x{self.height})"


# ---------------------------------------------------------------------------
# Backend adapters
# ---------------------------------------------------------------------------


class ArrayPixelSource(PixelSource):
    """PixelSource over a numpy uint8 array.

    Parameters
    ----------
    pixels : np.ndarray
        (H, W, 3) RGB, (H, W, 4) RGBA (alpha ignored) or (H, W) grayscale,
        dtype uint8.  The array is copied and frozen.
    """

    def __init__(self, pixels: np.ndarray):
        arr = np.asarray(pixels)
        if arr.dtype != np.uint8:
            raise ValueError(f"pixels must be uint8, got {arr.dtype}")

        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, np.newaxis], 3, axis=2)
        elif arr.ndim == 3 and arr.shape[2] == 4:
            arr = arr[:, :, :3]
        elif not (arr.ndim == 3 and arr.shape[2] == 3):
            raise ValueError(
                f"pixels must be (H, W), (H, W, 3) or (H, W, 4), got {arr.shape}"
            )

        arr = np.array(arr, dtype=np.uint8, copy=True)
        arr.setflags(write=False)
        self._pixels = arr

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    def channel(self, x: int, y: int, c: int) -> int:
        self.check_coords(x, y)
        return int(self._pixels[y, x, c])

    def to_array(self) -> np.ndarray:
        return self._pixels


class TensorPixelSource(ArrayPixelSource):
    """PixelSource over a torch image tensor.

    Parameters
    ----------
    tensor : torch.Tensor
        (3, H, W) or (1, H, W).  Float tensors are taken as [0, 1] and
        quantised with round(clamp(v, 0, 1) * 255); uint8 tensors are
        used as-is.

    Notes
    -----
    The tensor is quantised once at construction, so channel reads
    cost the same as for ArrayPixelSource.
    """

    def __init__(self, tensor: torch.Tensor):
        t = tensor.detach().cpu()
        if t.ndim != 3 or t.shape[0] not in (1, 3):
            raise ValueError(f"tensor must be (3, H, W) or (1, H, W), got {tuple(t.shape)}")

        if t.is_floating_point():
            t = (t.clamp(0, 1) * 255).round().to(torch.uint8)
        elif t.dtype != torch.uint8:
            raise ValueError(f"tensor must be float or uint8, got {t.dtype}")

        if t.shape[0] == 1:
            t = t.expand(3, -1, -1)

        # (C, H, W) -> (H, W, C)
        super().__init__(t.permute(1, 2, 0).contiguous().numpy())


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class SubregionPixelSource(PixelSource):
    """Offset window into a parent source.

    Built through ``PixelSource.subregion``, which validates the
    rectangle; the constructor trusts its arguments.
    """

    def __init__(self, parent: PixelSource, x: int, dx: int, y: int, dy: int):
        self._parent = parent
        self._x0 = x
        self._y0 = y
        self._width = dx
        self._height = dy

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def channel(self, x: int, y: int, c: int) -> int:
        self.check_coords(x, y)
        return self._parent.channel(self._x0 + x, self._y0 + y, c)

    def to_array(self) -> np.ndarray:
        return self._parent.to_array()[
            self._y0:self._y0 + self._height,
            self._x0:self._x0 + self._width,
        ]


class ResampledPixelSource(PixelSource):
    """Nearest-neighbour view of a parent source at a new size.

    Local (x, y) reads parent pixel
    (x * parent.width // width, y * parent.height // height),
    which is always inside the parent for 0 <= x < width.

    Raises
    ------
    ValueError
        If a size is negative, or a non-empty view is requested over an
        empty parent.
    """

    def __init__(self, parent: PixelSource, width: int, height: int):
        if width < 0 or height < 0:
            raise ValueError(f"size must be non-negative, got {width}x{height}")
        if (width > 0 and parent.width == 0) or (height > 0 and parent.height == 0):
            raise ValueError(f"cannot resample empty {parent!r} to {width}x{height}")
        self._parent = parent
        self._width = width
        self._height = height

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def _source_x(self, x: int) -> int:
        return x * self._parent.width // self._width

    def _source_y(self, y: int) -> int:
        return y * self._parent.height // self._height

    def channel(self, x: int, y: int, c: int) -> int:
        self.check_coords(x, y)
        return self._parent.channel(self._source_x(x), self._source_y(y), c)

    def to_array(self) -> np.ndarray:
        xs = np.arange(self._width, dtype=np.int64) * self._parent.width // max(self._width, 1)
        ys = np.arange(self._height, dtype=np.int64) * self._parent.height // max(self._height, 1)
        return self._parent.to_array()[ys[:, np.newaxis], xs[np.newaxis, :]]
