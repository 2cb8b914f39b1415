"""YAML schema validation and config loading.

Provides centralized validation for configuration files using pydantic:
    - Calibration schema (calibration.v1.yaml): reference image list,
      image root, outputs, comparator settings, logging

All entrypoints load configs through these validators for fail-fast error
detection with actionable messages (offending keys, allowed values).

Usage:
    from src.utils import validators

    cfg = validators.load_calibration_config("configs/calibration_v1.yaml")
    cfg.images        # ordered list of image identifiers
    cfg.comparator    # policy / normalization for every pair in the run
"""

from pathlib import Path
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# CALIBRATION SCHEMA V1
# ============================================================================

class ComparatorConfig(BaseModel):
    """Comparator settings shared by every pair of a calibration run."""
    model_config = ConfigDict(extra="forbid")

    policy: Literal["nearest", "crop", "strict"] = Field(
        "nearest", description="Size reconciliation policy"
    )
    normalization: Literal["mean", "sum"] = Field(
        "mean", description="Divide by grid area (mean) or keep the raw total (sum)"
    )
    vectorized: bool = Field(True, description="Use numpy accumulation")


class LoggingConfig(BaseModel):
    """Arguments forwarded to logging_config.setup_logging()."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Optional[str] = None
    json_format: bool = Field(False, alias="json", description="JSON lines in log_file")
    color: bool = True

    @field_validator('log_level', mode='before')
    @classmethod
    def upper_level(cls, v):
        return v.upper() if isinstance(v, str) else v


class CalibrationConfigV1(BaseModel):
    """Calibration run definition (calibration.v1.yaml schema).

    Image identifiers are file names resolved against ``image_root``.
    The run compares every identifier with every other one (including
    itself), in list order.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    schema_version: str = Field("calibration.v1", alias="schema", description="Schema version")
    image_root: str = Field(".", description="Directory holding the reference images")
    images: List[str] = Field(..., min_length=1, description="Ordered image identifiers")
    output_csv: str = Field("calibration.csv", description="CSV output, overwritten each run")
    manifest: Optional[str] = Field(
        "calibration_manifest.yaml", description="Run manifest; null disables it"
    )
    separator: str = Field(", ", min_length=1, description="CSV field separator")
    workers: int = Field(1, ge=1, le=64, description="Comparison threads")
    on_error: Literal["abort", "skip"] = Field(
        "abort", description="Abort the run or skip a failing pair"
    )
    comparator: ComparatorConfig = Field(default_factory=ComparatorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "calibration.v1":
            raise ValueError(f"Expected schema 'calibration.v1', got '{v}'")
        return v

    @field_validator('images')
    @classmethod
    def validate_images(cls, v: List[str]) -> List[str]:
        seen = set()
        for name in v:
            if not name or not name.strip():
                raise ValueError("Image identifiers must be non-empty")
            if name in seen:
                raise ValueError(f"Duplicate image identifier: '{name}'")
            seen.add(name)
        return v

    def image_path(self, identifier: str) -> Path:
        """Resolve an identifier against ``image_root``."""
        return Path(self.image_root) / identifier


def load_calibration_config(path: Union[str, Path]) -> CalibrationConfigV1:
    """Load and validate a calibration config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to calibration.v1 YAML file

    Returns
    -------
    CalibrationConfigV1
        Validated configuration

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If parsing or validation fails (with actionable error message)

    Notes
    -----
    A relative ``image_root`` is resolved against the config file's
    directory, so configs can travel with their image folders.
    """
    import yaml

    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Calibration config not found: {path}")

    try:
        data = fs.load_yaml(path)
        cfg = CalibrationConfigV1(**data)
    except (yaml.YAMLError, TypeError, ValueError) as e:
        raise ValueError(f"Calibration config validation failed at {path}: {e}") from e

    root = Path(cfg.image_root)
    if not root.is_absolute():
        cfg = cfg.model_copy(update={"image_root": str(path.parent / root)})
    return cfg
