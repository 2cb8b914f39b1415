"""Decode boundary: image files -> PixelSource.

Pillow does all format handling (JPEG, GIF, PNG, ...).  Every image is
converted to 8-bit RGB, so palette GIFs and grayscale JPEGs compare on
the same footing as truecolor files.

Any failure (missing file, unknown format, truncated data, decompression
bomb) surfaces as DecodeError before a comparison starts; the
Comparator never sees partially decoded data.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from .errors import DecodeError
from .pixel_source import ArrayPixelSource

logger = logging.getLogger(__name__)


def decode_image(path: Union[str, Path]) -> ArrayPixelSource:
    """Decode an image file into an RGB ArrayPixelSource.

    Parameters
    ----------
    path : Union[str, Path]
        Image file path

    Returns
    -------
    ArrayPixelSource
        (H, W, 3) uint8 view of the first frame

    Raises
    ------
    DecodeError
        If the file is missing or Pillow cannot decode it
    """
    path = Path(path)
    try:
        with Image.open(path) as img:
            rgb = img.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Failed to decode image {path}: {e}") from e

    pixels = np.asarray(rgb, dtype=np.uint8)
    logger.debug("Decoded %s (%dx%d)", path, pixels.shape[1], pixels.shape[0])
    return ArrayPixelSource(pixels)


class DirectoryDecoder:
    """Resolve calibration identifiers against a root directory.

    ``DirectoryDecoder("data/calibration")("red-640x480.jpg")`` decodes
    ``data/calibration/red-640x480.jpg``.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def resolve(self, identifier: str) -> Path:
        return self.root / identifier

    def __call__(self, identifier: str) -> ArrayPixelSource:
        return decode_image(self.resolve(identifier))
