"""Error taxonomy for image comparison.

Every error raised by the comparison core or its drivers derives from
``ImageCompareError`` so callers can catch the whole family at once.
The concrete classes also derive from the closest builtin
(``IndexError``, ``ValueError``) so generic handlers keep working.

Propagation:
    - The core (PixelSource, Comparator) never recovers locally.
    - Drivers (calibration runner, CLI) decide whether to skip or abort.
    - Only ``cli.main`` turns errors into process exit codes.
"""

from __future__ import annotations


class ImageCompareError(Exception):
    """Base class for all image comparison errors."""

    pass


class OutOfBoundsError(ImageCompareError, IndexError):
    """Raised when a pixel read or subregion falls outside the image."""

    pass


class DimensionMismatchError(ImageCompareError, ValueError):
    """Raised when two sources differ in size under the ``strict`` policy."""

    pass


class DecodeError(ImageCompareError):
    """Raised by the decode boundary when an image cannot be read."""

    pass


class CalibrationError(ImageCompareError):
    """Raised when a calibration run produces inconsistent results."""

    pass
