from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import nibabel as nb
import numpy as np
import pytest

from fixelcorr import master_cli
from fixelcorr.core import runner
from fixelcorr.core.logfmt import STATUS, VERBOSE
from fixelcorr.core.progress import is_progress_enabled, set_progress_enabled
from fixelcorr.core.validation import ConfigurationError, DataError
from fixelcorr.correspondence.mapping import HEADER_NAME, Mapping
from fixelcorr.tests._fixels import write_fixel_dir


SHAPE = (2, 1, 1)
SOURCE = {
    (0, 0, 0): [((1, 0, 0), 0.4), ((0, 1, 0), 0.6)],
    (1, 0, 0): [((0, 0, 1), 0.5)],
}
TARGET = {
    (0, 0, 0): [((0.9, 0.1, 0), 0.5), ((0, 0, 1), 0.1)],
    (1, 0, 0): [((0, 0.1, 1), 0.5)],
}


@pytest.fixture(autouse=True)
def _no_progress_bars(monkeypatch):
    monkeypatch.setenv("FIXELCORR_PROGRESS", "0")
    yield
    set_progress_enabled(None)


@pytest.fixture()
def datasets(tmp_path: Path) -> tuple[Path, Path]:
    source = write_fixel_dir(tmp_path / "source", SOURCE, shape=SHAPE, extra={"fa.nii.gz": [0.2, 0.9, 0.7]})
    target = write_fixel_dir(tmp_path / "target", TARGET, shape=SHAPE)
    return source, target


def _main(monkeypatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["fixelcorr", *argv])
    master_cli.main()


def _read(path: Path) -> np.ndarray:
    return np.asarray(nb.load(str(path)).dataobj).reshape(-1)


def test_match_then_project(monkeypatch, tmp_path: Path, datasets) -> None:
    source, target = datasets
    corr = tmp_path / "corr"
    _main(monkeypatch, "match", str(source), str(target), str(corr),
          "--algorithm", "nearest", "--angle", "30", "--n_workers", "1")

    mapping = Mapping.load(corr)
    assert list(mapping) == [(0,), (), (2,)]
    header = json.loads((corr / HEADER_NAME).read_text(encoding="utf-8"))
    assert header["metadata"]["algorithm"] == {"algorithm": "nearest", "max_angle": 30.0}
    assert header["metadata"]["command"] == "match"
    assert "fixelcorr_version" in header["metadata"]

    fa_source = source.parent / "fa.nii.gz"
    _main(monkeypatch, "project", str(fa_source), str(corr), "sum", str(target.parent), "fa.nii.gz",
          "--fill", "-1")
    np.testing.assert_allclose(_read(target.parent / "fa.nii.gz"), [0.2, -1.0, 0.7], rtol=1e-6)


def test_match_writes_cost_and_remapped_outputs(monkeypatch, tmp_path: Path, datasets) -> None:
    source, target = datasets
    _main(monkeypatch, "match", str(source), str(target), str(tmp_path / "corr"),
          "--algorithm", "ni2022", "--constants", "1", "0.5",
          "--cost", str(tmp_path / "cost.nii.gz"), "--remapped", str(tmp_path / "remapped"))

    cost = np.asarray(nb.load(str(tmp_path / "cost.nii.gz")).dataobj)
    assert cost.shape == SHAPE
    assert np.all(cost >= 0)
    assert (tmp_path / "remapped" / "index.nii.gz").exists()
    assert (tmp_path / "remapped" / "directions.nii.gz").exists()
    assert _read(tmp_path / "remapped" / "fd.nii.gz").shape == (3,)


def test_match_refuses_existing_output(tmp_path: Path, datasets) -> None:
    source, target = datasets
    (tmp_path / "corr").mkdir()
    args = {"source": str(source), "target": str(target), "output": str(tmp_path / "corr")}
    with pytest.raises(ConfigurationError, match="already exists"):
        runner.run_match(runner.build_config(args, runner.MATCH_ARGS))


def test_project_angle_and_mismatched_target(monkeypatch, tmp_path: Path, datasets) -> None:
    source, target = datasets
    corr = tmp_path / "corr"
    _main(monkeypatch, "match", str(source), str(target), str(corr), "--algorithm", "nearest")

    _main(monkeypatch, "project", str(source), str(corr), "angle", str(target.parent), "angle.nii.gz")
    angle = _read(target.parent / "angle.nii.gz")
    expected = np.arccos(np.dot([1.0, 0.0, 0.0], np.array([0.9, 0.1, 0.0]) / np.linalg.norm([0.9, 0.1, 0.0])))
    assert angle[0] == pytest.approx(expected, rel=1e-4)
    assert angle[1] == 0.0

    other = write_fixel_dir(tmp_path / "other", {(0, 0, 0): [((1, 0, 0), 1.0)]}, shape=SHAPE)
    args = {
        "data_in": str(source),
        "correspondence": str(corr),
        "metric": "sum",
        "directory_out": str(other.parent),
        "data_out": "projected.nii.gz",
    }
    with pytest.raises(DataError, match="target fixels"):
        runner.run_project(runner.build_config(args, runner.PROJECT_ARGS))
    assert not (other.parent / "projected.nii.gz").exists()


def test_configure_logging_output_modes() -> None:
    runner.configure_logging("quiet")
    assert logging.getLogger().level == STATUS
    assert is_progress_enabled() is False

    runner.configure_logging("verbose")
    assert logging.getLogger().level == VERBOSE
    runner.configure_logging("standard")
    assert logging.getLogger().level == logging.INFO


def test_match_rejects_cost_file_in_missing_directory(tmp_path: Path, datasets) -> None:
    source, target = datasets
    args = {
        "source": str(source),
        "target": str(target),
        "output": str(tmp_path / "corr"),
        "cost": str(tmp_path / "nodir" / "cost.nii.gz"),
    }
    with pytest.raises(ConfigurationError, match="Output directory not found"):
        runner.run_match(runner.build_config(args, runner.MATCH_ARGS))
    assert not (tmp_path / "corr").exists()


def test_match_rejects_colliding_outputs(tmp_path: Path, datasets) -> None:
    source, target = datasets
    corr = tmp_path / "corr"
    args = {"source": str(source), "target": str(target), "output": str(corr), "remapped": str(corr)}
    with pytest.raises(ConfigurationError, match="collide"):
        runner.run_match(runner.build_config(args, runner.MATCH_ARGS))
    assert not corr.exists()


def test_failed_export_leaves_no_outputs(monkeypatch, tmp_path: Path, datasets) -> None:
    from fixelcorr.correspondence.matcher import Matcher

    def _fail(self, directory, name="density.nii.gz"):
        raise OSError("disk full")

    monkeypatch.setattr(Matcher, "export_remapped", _fail)
    source, target = datasets
    args = {
        "source": str(source),
        "target": str(target),
        "output": str(tmp_path / "corr"),
        "cost": str(tmp_path / "cost.nii.gz"),
        "remapped": str(tmp_path / "remapped"),
    }
    with pytest.raises(OSError, match="disk full"):
        runner.run_match(runner.build_config(args, runner.MATCH_ARGS))
    assert not (tmp_path / "corr").exists()
    assert not (tmp_path / "cost.nii.gz").exists()
    assert not (tmp_path / "remapped").exists()
