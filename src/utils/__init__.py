"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Atomic I/O and YAML (fs)
    - Hashing for provenance (hashing)
    - Profiling (profiler)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (image_compare, calibration).

Convenience imports:
    from src.utils import fs, hashing, validators
    from src.utils.logging_config import setup_logging
"""

from . import fs
from . import hashing
from . import logging_config
from . import profiler
from . import validators

from .logging_config import push_context, setup_logging

__all__ = [
    # Modules
    'fs',
    'hashing',
    'logging_config',
    'profiler',
    'validators',
    # Direct exports
    'setup_logging',
    'push_context',
]
