"""Batch calibration over a reference image corpus.

Usage:
    from src.calibration import calibrate_main
    from src.utils import validators
    result = calibrate_main(validators.load_calibration_config("configs/calibration_v1.yaml"))
"""

from .runner import (
    CalibrationRecord,
    calibrate_main,
    cross_product,
    run_calibration,
    write_calibration_csv,
)

__all__ = [
    'CalibrationRecord',
    'calibrate_main',
    'cross_product',
    'run_calibration',
    'write_calibration_csv',
]
