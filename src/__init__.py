"""Image Comparator: naive pixel-difference scoring and calibration.

This package computes a dissimilarity score between two raster images and
batch-evaluates it over a reference corpus to calibrate what scores mean.

Architecture layers (strict one-way dependency):
    image_compare/cli → calibration/ → image_compare/{comparator,decode} → utils/

Key invariants:
    - Scores are floats >= 0.0; 0.0 means pixel-identical
    - One Comparator (policy + normalization) per calibration run
    - All images are 8-bit RGB once decoded
    - YAML-only configs
"""

__version__ = "1.0.0"
