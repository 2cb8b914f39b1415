"""Command-line entry point: compare two images, or run calibration.

CLI:
    image-compare first.jpg second.jpg
    image-compare                       # prompts for both paths on stdin
    image-compare -c                    # calibration with configs/calibration_v1.yaml
    image-compare --calibrate --config my_run.yaml --workers 4

Single comparison prints:
    NaiveComparison of two images.  Lower score the better
    Score is 765.0

Calibration prints "Finished." once calibration.csv is written.

Logs go to stderr so stdout carries only the results above.

Exit codes (decided here only; the core raises typed errors):
    0    success
    1    comparison failed (ImageCompareError)
    2    calibration config missing or invalid
    107  first image selection cancelled
    115  second image selection cancelled
    127  first image (or a calibration image) failed to decode
    134  second image failed to decode
    217  calibration output directory could not be created
    232  calibration output could not be written
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from src.calibration.runner import calibrate_main
from src.image_compare.comparator import NORMALIZATIONS, POLICIES, Comparator
from src.image_compare.decode import decode_image
from src.image_compare.errors import DecodeError, ImageCompareError
from src.utils.fs import ensure_dir
from src.utils.logging_config import install_excepthook, pop_context, setup_logging
from src.utils.validators import CalibrationConfigV1, load_calibration_config

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_COMPARE_FAILED = 1
EXIT_BAD_CONFIG = 2
EXIT_FIRST_CANCELLED = 107
EXIT_SECOND_CANCELLED = 115
EXIT_FIRST_DECODE = 127
EXIT_SECOND_DECODE = 134
EXIT_CREATE_FAILED = 217
EXIT_WRITE_FAILED = 232

DEFAULT_CONFIG = "configs/calibration_v1.yaml"
BANNER = "NaiveComparison of two images.  Lower score the better"


class SelectionCancelled(Exception):
    """Raised when the user gives no path at a prompt."""

    pass


def prompt_for_path(label: str, input_fn: Callable[[str], str] = input) -> Path:
    """Ask for an image path; empty input or EOF cancels."""
    try:
        answer = input_fn(f"{label} image: ").strip()
    except EOFError:
        answer = ""
    if not answer:
        raise SelectionCancelled(f"No {label.lower()} image selected")
    return Path(answer)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-compare",
        description="Score the pixel difference between two images (lower is more similar)",
    )
    parser.add_argument("first", nargs="?", help="First image file")
    parser.add_argument("second", nargs="?", help="Second image file")
    parser.add_argument(
        "-c", "--calibrate",
        action="store_true",
        help="Compare the calibration image list pairwise and write a CSV",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG,
        help="Calibration config (calibration.v1 YAML)",
    )
    parser.add_argument("--output", type=str, help="Override calibration CSV path")
    parser.add_argument("--workers", type=int, help="Override calibration worker threads")
    parser.add_argument(
        "--policy",
        choices=POLICIES,
        help="Size reconciliation policy (default: nearest)",
    )
    parser.add_argument(
        "--normalization",
        choices=NORMALIZATIONS,
        help="Score normalization (default: mean)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: WARNING for comparisons, config value for calibration)",
    )
    parser.add_argument("--log-file", type=str, help="Also log to this file")
    return parser


def _comparator_overrides(args: argparse.Namespace) -> dict:
    overrides = {}
    if args.policy:
        overrides['policy'] = args.policy
    if args.normalization:
        overrides['normalization'] = args.normalization
    return overrides


def _run_compare(args: argparse.Namespace, input_fn: Callable[[str], str]) -> int:
    setup_logging(args.log_level or "WARNING", args.log_file, context={"app": "compare"})
    print(BANNER)

    try:
        first = Path(args.first) if args.first else prompt_for_path("First", input_fn)
    except SelectionCancelled as e:
        logger.error("%s", e)
        return EXIT_FIRST_CANCELLED
    try:
        second = Path(args.second) if args.second else prompt_for_path("Second", input_fn)
    except SelectionCancelled as e:
        logger.error("%s", e)
        return EXIT_SECOND_CANCELLED

    try:
        a = decode_image(first)
    except DecodeError as e:
        logger.error("%s", e)
        return EXIT_FIRST_DECODE
    try:
        b = decode_image(second)
    except DecodeError as e:
        logger.error("%s", e)
        return EXIT_SECOND_DECODE

    try:
        score = Comparator(**_comparator_overrides(args)).compare(a, b)
    except ImageCompareError as e:
        logger.error("Comparison failed: %s", e)
        return EXIT_COMPARE_FAILED

    print(f"Score is {score}")
    return EXIT_OK


def _apply_overrides(cfg: CalibrationConfigV1, args: argparse.Namespace) -> CalibrationConfigV1:
    """Re-validate the config with command-line overrides applied."""
    updates = {}
    overrides = _comparator_overrides(args)
    if overrides:
        updates['comparator'] = {**cfg.comparator.model_dump(), **overrides}
    if args.output is not None:
        updates['output_csv'] = args.output
    if args.workers is not None:
        updates['workers'] = args.workers
    if not updates:
        return cfg
    return CalibrationConfigV1.model_validate({**cfg.model_dump(by_alias=True), **updates})


def _prepare_outputs(cfg: CalibrationConfigV1) -> None:
    for target in (cfg.output_csv, cfg.manifest):
        if target:
            ensure_dir(Path(target).parent)


def _run_calibrate(args: argparse.Namespace) -> int:
    setup_logging(args.log_level or "INFO", args.log_file, context={"app": "calibrate"})

    try:
        cfg = _apply_overrides(load_calibration_config(args.config), args)
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_BAD_CONFIG

    log_cfg = cfg.logging
    setup_logging(
        args.log_level or log_cfg.log_level,
        args.log_file or log_cfg.log_file,
        json=log_cfg.json_format,
        color=log_cfg.color,
    )

    try:
        _prepare_outputs(cfg)
    except OSError as e:
        logger.error("Could not create calibration output directory: %s", e)
        return EXIT_CREATE_FAILED

    try:
        calibrate_main(cfg)
    except DecodeError as e:
        logger.error("%s", e)
        return EXIT_FIRST_DECODE
    except ImageCompareError as e:
        logger.error("Calibration failed: %s", e)
        return EXIT_COMPARE_FAILED
    except OSError as e:
        logger.error("Could not write calibration output: %s", e)
        return EXIT_WRITE_FAILED

    print("Finished.")
    return EXIT_OK


def main(argv: Optional[List[str]] = None, input_fn: Callable[[str], str] = input) -> int:
    """CLI entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)
    install_excepthook()

    try:
        if args.calibrate:
            return _run_calibrate(args)
        return _run_compare(args, input_fn)
    finally:
        pop_context()


if __name__ == "__main__":
    sys.exit(main())
