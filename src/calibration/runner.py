"""Calibration runner: score every reference image against every other.

Runs the Comparator over the full cross-product of a fixed image list:
    1. Decode every identifier once (any DecodeError aborts before scoring)
    2. Compare each ordered pair (i, j), i-major, self-pairs included
    3. Check self-pairs scored exactly 0.0 (built-in correctness check)
    4. Write calibration.csv ("id1, id2, score" per line), overwriting
    5. Write a YAML manifest (config, image hashes/sizes, timing)

Refactored architecture:
    - run_calibration(ids, decode, comparator) → list[CalibrationRecord]
        * Pure driver, no file output (used by tests with fixture decoders)
    - calibrate_main(config) → dict
        * Whole run from a validated CalibrationConfigV1 (used by the CLI)

Concurrency:
    workers > 1 fans comparisons out over a thread pool.  Records are
    still returned in issue order; sources are read-only and shared.

Error policy (on_error):
    - "abort" (default): the first ImageCompareError ends the run
    - "skip": the failing pair is logged and left out of the output
"""

from __future__ import annotations

import contextvars
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from src.image_compare.comparator import Comparator
from src.image_compare.decode import DirectoryDecoder
from src.image_compare.errors import CalibrationError, ImageCompareError
from src.image_compare.pixel_source import PixelSource
from src.utils import fs, hashing
from src.utils.logging_config import log_context
from src.utils.profiler import TimerAccumulator, timer
from src.utils.validators import CalibrationConfigV1

logger = logging.getLogger(__name__)

CSV_SEPARATOR = ", "

Decoder = Callable[[str], PixelSource]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalibrationRecord:
    """One scored pair of a calibration run."""

    first_id: str
    second_id: str
    score: float

    @property
    def is_self_pair(self) -> bool:
        return self.first_id == self.second_id

    def to_line(self, separator: str = CSV_SEPARATOR) -> str:
        """``first<sep>second<sep>score`` without the trailing newline."""
        return f"{self.first_id}{separator}{self.second_id}{separator}{self.score!r}"


def cross_product(image_ids: Sequence[str]) -> List[Tuple[str, str]]:
    """All ordered pairs (a, b) over ``image_ids``, first index major."""
    return [(a, b) for a in image_ids for b in image_ids]


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def decode_all(image_ids: Iterable[str], decode: Decoder) -> Dict[str, PixelSource]:
    """Decode each identifier once; DecodeError propagates unchanged."""
    sources: Dict[str, PixelSource] = {}
    for identifier in image_ids:
        if identifier in sources:
            continue
        with timer(f"decode {identifier}"):
            sources[identifier] = decode(identifier)
    return sources


def _compare_pair(
    first: str,
    second: str,
    sources: Dict[str, PixelSource],
    comparator: Comparator,
    compare_timer: TimerAccumulator,
    on_error: str,
) -> Optional[CalibrationRecord]:
    with log_context(pair=f"{first}<->{second}"):
        logger.info('Comparing: "%s" <-> "%s"', first, second)
        try:
            with compare_timer.measure():
                score = comparator.compare(sources[first], sources[second])
        except ImageCompareError as e:
            if on_error == "skip":
                logger.warning("Skipping pair: %s", e)
                return None
            raise
        logger.debug("Scored %r", score)

    if first == second and score != 0.0:
        raise CalibrationError(
            f'Self-comparison of "{first}" scored {score!r}, expected 0.0'
        )
    return CalibrationRecord(first, second, score)


def run_calibration(
    image_ids: Sequence[str],
    decode: Decoder,
    comparator: Optional[Comparator] = None,
    *,
    workers: int = 1,
    on_error: str = "abort",
    compare_timer: Optional[TimerAccumulator] = None,
) -> List[CalibrationRecord]:
    """Compare every image with every image (including itself).

    Parameters
    ----------
    image_ids : Sequence[str]
        Ordered identifiers; N ids give N*N pairs
    decode : Callable[[str], PixelSource]
        Identifier → PixelSource (e.g. DirectoryDecoder)
    comparator : Comparator, optional
        Shared by every pair; default Comparator() (nearest, mean)
    workers : int
        Comparison threads, default 1 (sequential)
    on_error : str
        "abort" or "skip" (see module docstring)
    compare_timer : TimerAccumulator, optional
        Receives one measurement per comparison

    Returns
    -------
    list[CalibrationRecord]
        In issue order (i-major), minus skipped pairs

    Raises
    ------
    DecodeError
        If any identifier fails to decode (before any comparison)
    CalibrationError
        If a self-pair scores anything but 0.0
    ImageCompareError
        First comparison failure when on_error="abort"
    """
    if on_error not in ("abort", "skip"):
        raise ValueError(f"on_error must be 'abort' or 'skip', got {on_error!r}")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    comparator = comparator or Comparator()
    compare_timer = compare_timer or TimerAccumulator("compare")
    ids = list(image_ids)

    sources = decode_all(ids, decode)
    pairs = cross_product(ids)
    logger.info(
        "Calibrating %d images: %d pairs (policy=%s, normalization=%s, workers=%d)",
        len(ids), len(pairs), comparator.policy, comparator.normalization, workers,
    )

    args = (sources, comparator, compare_timer, on_error)
    if workers == 1:
        results = [_compare_pair(a, b, *args) for a, b in pairs]
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # one context copy per task so log fields survive the thread hop
            futures = [
                pool.submit(contextvars.copy_context().run, _compare_pair, a, b, *args)
                for a, b in pairs
            ]
            try:
                results = [f.result() for f in futures]
            except BaseException:
                for f in futures:
                    f.cancel()
                raise

    records = [r for r in results if r is not None]
    if len(records) != len(pairs):
        logger.warning("Skipped %d of %d pairs", len(pairs) - len(records), len(pairs))
    return records


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def format_csv(records: Iterable[CalibrationRecord], separator: str = CSV_SEPARATOR) -> str:
    """One newline-terminated line per record."""
    return "".join(record.to_line(separator) + "\n" for record in records)


def write_calibration_csv(
    records: Iterable[CalibrationRecord],
    path: Union[str, Path],
    separator: str = CSV_SEPARATOR,
) -> Path:
    """Write records to ``path``, replacing any previous run atomically."""
    path = Path(path)
    fs.atomic_write_text(path, format_csv(records, separator))
    return path


def summarize(records: Sequence[CalibrationRecord]) -> Dict[str, Any]:
    """Record counts and the off-diagonal score range."""
    cross = [r.score for r in records if not r.is_self_pair]
    return {
        'records': len(records),
        'self_pairs': sum(1 for r in records if r.is_self_pair),
        'min_cross_score': min(cross) if cross else None,
        'max_cross_score': max(cross) if cross else None,
    }


def write_manifest(
    path: Union[str, Path],
    config: CalibrationConfigV1,
    records: Sequence[CalibrationRecord],
    image_info: Dict[str, Dict[str, Any]],
    elapsed_s: float,
    mean_compare_s: float,
) -> Path:
    """Write the YAML run manifest next to the CSV.

    ``image_info`` maps identifiers to their decoded ``size`` and
    ``pixels_sha256``; the file hash is added when the image is on disk.
    """
    images = []
    for identifier in config.images:
        image_path = config.image_path(identifier)
        entry: Dict[str, Any] = {'id': identifier}
        if image_path.is_file():
            entry['sha256'] = hashing.sha256_file(image_path)
        entry.update(image_info.get(identifier, {}))
        images.append(entry)

    manifest = {
        'schema': 'calibration_manifest.v1',
        'created_utc': time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime()),
        'output_csv': str(config.output_csv),
        'comparator': config.comparator.model_dump(),
        'images': images,
        'summary': summarize(records),
        'timing': {
            'elapsed_s': round(elapsed_s, 6),
            'mean_compare_s': round(mean_compare_s, 6),
        },
    }
    path = Path(path)
    fs.atomic_yaml_dump(manifest, path)
    return path


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def calibrate_main(
    config: CalibrationConfigV1,
    decode: Optional[Decoder] = None,
) -> Dict[str, Any]:
    """Run a full calibration from a validated config.

    Parameters
    ----------
    config : CalibrationConfigV1
        Image list, outputs and comparator settings
    decode : Callable[[str], PixelSource], optional
        Overrides DirectoryDecoder(config.image_root)

    Returns
    -------
    Dict[str, Any]
        Results dict with:
            - records: list[CalibrationRecord]
            - csv_path: str
            - manifest_path: Optional[str]
            - elapsed_s: float

    Raises
    ------
    DecodeError, CalibrationError, ImageCompareError
        From run_calibration
    OSError
        If an output file cannot be written
    """
    base_decode = decode or DirectoryDecoder(config.image_root)
    image_info: Dict[str, Dict[str, Any]] = {}

    def decode_and_record(identifier: str) -> PixelSource:
        source = base_decode(identifier)
        image_info[identifier] = {
            'size': list(source.size),
            'pixels_sha256': hashing.sha256_array(source.to_array()),
        }
        return source

    comparator = Comparator(**config.comparator.model_dump())
    compare_timer = TimerAccumulator("compare")

    start = time.perf_counter()
    with log_context(run=Path(config.output_csv).name):
        records = run_calibration(
            config.images,
            decode_and_record,
            comparator,
            workers=config.workers,
            on_error=config.on_error,
            compare_timer=compare_timer,
        )
    elapsed = time.perf_counter() - start

    csv_path = write_calibration_csv(records, config.output_csv, config.separator)
    logger.info("Wrote %d records to %s in %.2f s", len(records), csv_path, elapsed)

    manifest_path = None
    if config.manifest:
        manifest_path = write_manifest(
            config.manifest, config, records, image_info, elapsed, compare_timer.mean()
        )
        logger.info("Wrote manifest to %s", manifest_path)

    return {
        'records': records,
        'csv_path': str(csv_path),
        'manifest_path': str(manifest_path) if manifest_path else None,
        'elapsed_s': elapsed,
    }
