"""SHA-256 hashing for calibration provenance.

Provides:
    - sha256_file(): Hash file contents (calibration images)
    - sha256_array(): Hash decoded pixel data (numpy arrays)

The calibration manifest records one file hash per reference image, so
two calibration.csv files can be checked for having been produced from
the same corpus.

Deterministic hashing:
    - Arrays hashed as dtype + shape + C-contiguous bytes
    - Files read in chunks (1 MB default)
    - Results are hex strings (64 chars)

Note: named `hashing.py` rather than `hash.py` to avoid shadowing builtin `hash()`.
"""

import hashlib
from pathlib import Path
from typing import Union

import numpy as np


def sha256_file(path: Union[str, Path], chunk_size: int = 1 << 20) -> str:
    """Compute SHA-256 hash of file contents.

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    sha256 = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            sha256.update(chunk)
    return sha256.hexdigest()


def sha256_array(arr: np.ndarray) -> str:
    """Compute SHA-256 hash of an array's dtype, shape and values.

    Two arrays hash equal iff they have the same dtype, the same shape
    and byte-identical contents.
    """
    arr = np.ascontiguousarray(arr)
    sha256 = hashlib.sha256()
    sha256.update(str(arr.dtype).encode('ascii'))
    sha256.update(repr(arr.shape).encode('ascii'))
    sha256.update(arr.tobytes())
    return sha256.hexdigest()
