"""Pixel-level image comparison core.

    PixelSource → Comparator → float score

The Comparator depends only on the PixelSource contract; decoders and
tensor adapters live beside it so the core stays backend-agnostic.

Convenience imports:
    from src.image_compare import compare, Comparator, decode_image
"""

from .comparator import Comparator, compare
from .decode import DirectoryDecoder, decode_image
from .errors import (
    CalibrationError,
    DecodeError,
    DimensionMismatchError,
    ImageCompareError,
    OutOfBoundsError,
)
from .pixel_source import (
    ArrayPixelSource,
    PixelSource,
    ResampledPixelSource,
    SubregionPixelSource,
    TensorPixelSource,
)

__all__ = [
    'ArrayPixelSource',
    'CalibrationError',
    'Comparator',
    'DecodeError',
    'DimensionMismatchError',
    'DirectoryDecoder',
    'ImageCompareError',
    'OutOfBoundsError',
    'PixelSource',
    'ResampledPixelSource',
    'SubregionPixelSource',
    'TensorPixelSource',
    'compare',
    'decode_image',
]
