"""Test the image-compare command-line entry point.

Tests for src.image_compare.cli.main():
    - Two paths → banner + "Score is <float>" on stdout, exit 0
    - Missing paths are prompted for; empty answer / EOF cancels (107, 115)
    - Decode failures map to 127 (first) and 134 (second)
    - Strict policy mismatch maps to 1
    - -c/--calibrate runs the configured list and prints "Finished."
    - Bad config or out-of-range --workers → 2
    - Output directory not creatable → 217, output not writable → 232

Run:
    pytest tests/test_cli.py -v
"""

import logging
import sys

import pytest
import yaml
from PIL import Image

from src.image_compare import cli
from src.utils import logging_config


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    """main() configures the root logger; undo that after each test."""
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging_config.pop_context()


@pytest.fixture
def images(tmp_path):
    black = tmp_path / "black.png"
    white = tmp_path / "white.png"
    large = tmp_path / "large.png"
    Image.new("RGB", (2, 2), (0, 0, 0)).save(black)
    Image.new("RGB", (2, 2), (255, 255, 255)).save(white)
    Image.new("RGB", (3, 3), (0, 0, 0)).save(large)
    return {"black": black, "white": white, "large": large}


def answers(*values):
    """input() replacement returning ``values`` in order, then EOF."""
    it = iter(values)

    def _input(prompt):
        try:
            return next(it)
        except StopIteration:
            raise EOFError
    return _input


# ============================================================================
# SINGLE COMPARISON
# ============================================================================

def test_compare_two_files(images, capsys):
    code = cli.main([str(images["black"]), str(images["white"])])
    out = capsys.readouterr().out

    assert code == cli.EXIT_OK
    assert out.splitlines() == [cli.BANNER, "Score is 765.0"]


def test_compare_sum_normalization(images, capsys):
    cli.main([str(images["black"]), str(images["white"]), "--normalization", "sum"])
    assert "Score is 3060.0" in capsys.readouterr().out


def test_compare_identical(images, capsys):
    cli.main([str(images["white"]), str(images["white"])])
    assert "Score is 0.0" in capsys.readouterr().out


def test_prompts_for_paths(images, capsys):
    code = cli.main([], input_fn=answers(str(images["black"]), str(images["white"])))
    assert code == cli.EXIT_OK
    assert "Score is 765.0" in capsys.readouterr().out


def test_prompts_for_second_path_only(images, capsys):
    code = cli.main([str(images["black"])], input_fn=answers(str(images["black"])))
    assert code == cli.EXIT_OK
    assert "Score is 0.0" in capsys.readouterr().out


def test_first_selection_cancelled():
    assert cli.main([], input_fn=answers("")) == cli.EXIT_FIRST_CANCELLED


def test_first_selection_eof():
    assert cli.main([], input_fn=answers()) == cli.EXIT_FIRST_CANCELLED


def test_second_selection_cancelled(images):
    code = cli.main([], input_fn=answers(str(images["black"]), "   "))
    assert code == cli.EXIT_SECOND_CANCELLED


def test_first_decode_failure(images, tmp_path, capsys):
    code = cli.main([str(tmp_path / "missing.png"), str(images["white"])])
    assert code == cli.EXIT_FIRST_DECODE
    assert "Score is" not in capsys.readouterr().out


def test_second_decode_failure(images, tmp_path):
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"\x00\x01\x02")
    assert cli.main([str(images["black"]), str(bad)]) == cli.EXIT_SECOND_DECODE


def test_strict_policy_mismatch(images):
    code = cli.main([str(images["black"]), str(images["large"]), "--policy", "strict"])
    assert code == cli.EXIT_COMPARE_FAILED


def test_default_policy_reconciles(images, capsys):
    code = cli.main([str(images["black"]), str(images["large"])])
    assert code == cli.EXIT_OK
    assert "Score is 0.0" in capsys.readouterr().out


def test_prompt_for_path():
    assert str(cli.prompt_for_path("First", answers(" a.png "))) == "a.png"
    with pytest.raises(cli.SelectionCancelled):
        cli.prompt_for_path("First", answers(""))


# ============================================================================
# CALIBRATION
# ============================================================================

def write_config(tmp_path, fixtures, **overrides):
    cfg = {
        'schema': 'calibration.v1',
        'image_root': '.',
        'images': [fixtures["black"].name, fixtures["white"].name],
        'output_csv': str(tmp_path / "calibration.csv"),
        'manifest': None,
    }
    cfg.update(overrides)
    path = tmp_path / "calibration.yaml"
    path.write_text(yaml.safe_dump(cfg))
    return path


def test_calibrate(images, tmp_path, capsys):
    config = write_config(tmp_path, images)
    code = cli.main(["-c", "--config", str(config)])

    assert code == cli.EXIT_OK
    assert capsys.readouterr().out.strip().endswith("Finished.")
    lines = (tmp_path / "calibration.csv").read_text().splitlines()
    assert lines == [
        "black.png, black.png, 0.0",
        "black.png, white.png, 765.0",
        "white.png, black.png, 765.0",
        "white.png, white.png, 0.0",
    ]


def test_calibrate_overrides(images, tmp_path):
    config = write_config(tmp_path, images)
    out = tmp_path / "other.csv"
    code = cli.main([
        "--calibrate", "--config", str(config),
        "--output", str(out), "--normalization", "sum", "--workers", "2",
    ])

    assert code == cli.EXIT_OK
    assert out.read_text().splitlines()[1] == "black.png, white.png, 3060.0"


def test_calibrate_missing_config(tmp_path):
    assert cli.main(["-c", "--config", str(tmp_path / "nope.yaml")]) == cli.EXIT_BAD_CONFIG


def test_calibrate_invalid_config(images, tmp_path):
    config = write_config(tmp_path, images, workers=0)
    assert cli.main(["-c", "--config", str(config)]) == cli.EXIT_BAD_CONFIG


def test_calibrate_decode_failure(images, tmp_path):
    config = write_config(tmp_path, images, images=["black.png", "ghost.png"])
    assert cli.main(["-c", "--config", str(config)]) == cli.EXIT_FIRST_DECODE
    assert not (tmp_path / "calibration.csv").exists()


@pytest.mark.parametrize("workers", ["-2", "0", "500"])
def test_calibrate_invalid_workers_override(images, tmp_path, workers):
    config = write_config(tmp_path, images)
    code = cli.main(["-c", "--config", str(config), "--workers", workers])
    assert code == cli.EXIT_BAD_CONFIG
    assert not (tmp_path / "calibration.csv").exists()


def test_calibrate_output_dir_not_creatable(images, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    config = write_config(tmp_path, images, output_csv=str(blocker / "calibration.csv"))
    assert cli.main(["-c", "--config", str(config)]) == cli.EXIT_CREATE_FAILED


def test_calibrate_write_failure(images, tmp_path):
    target = tmp_path / "taken"
    target.mkdir()
    config = write_config(tmp_path, images, output_csv=str(target))
    assert cli.main(["-c", "--config", str(config)]) == cli.EXIT_WRITE_FAILED
    assert target.is_dir()


def test_main_clears_log_context(images):
    cli.main([str(images["black"]), str(images["white"])])
    assert logging_config.current_context() == {}
