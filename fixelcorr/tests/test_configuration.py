from __future__ import annotations

import configparser
from pathlib import Path

import pytest

from fixelcorr.core import runner
from fixelcorr.core.configuration import MatchConfiguration, ProjectConfiguration
from fixelcorr.core.validation import ConfigurationError


@pytest.fixture()
def inputs(tmp_path: Path) -> dict[str, Path]:
    (tmp_path / "source").mkdir()
    (tmp_path / "target").mkdir()
    (tmp_path / "corr").mkdir()
    source = tmp_path / "source" / "fd.nii.gz"
    target = tmp_path / "target" / "fd.nii.gz"
    source.write_bytes(b"dummy")
    target.write_bytes(b"dummy")
    return {
        "source": source,
        "target": target,
        "output": tmp_path / "out",
        "correspondence": tmp_path / "corr",
        "directory_out": tmp_path / "target",
    }


def _match_cfg(inputs: dict, **extra) -> configparser.ConfigParser:
    args = {"source": str(inputs["source"]), "target": str(inputs["target"]), "output": str(inputs["output"])}
    args.update(extra)
    return runner.build_config(args, runner.MATCH_ARGS)


def _project_cfg(inputs: dict, **extra) -> configparser.ConfigParser:
    args = {
        "data_in": str(inputs["source"]),
        "correspondence": str(inputs["correspondence"]),
        "metric": "mean",
        "directory_out": str(inputs["directory_out"]),
        "data_out": "fd_from_source.nii.gz",
    }
    args.update(extra)
    return runner.build_config(args, runner.PROJECT_ARGS)


def test_match_defaults(inputs) -> None:
    configuration = MatchConfiguration(_match_cfg(inputs))
    assert configuration.algorithm == "ni2022"
    assert configuration.algorithm_params() == {}
    assert configuration.output_mode == "standard"
    assert configuration.n_workers is None
    assert configuration.cost_path is None


def test_match_options_reach_the_algorithm(inputs) -> None:
    configuration = MatchConfiguration(
        _match_cfg(inputs, max_origins=2, max_objectives=1, constants=[2.0, 0.25], n_workers=3)
    )
    assert configuration.algorithm_params() == {
        "max_origins": 2,
        "max_objectives": 1,
        "alpha": 2.0,
        "beta": 0.25,
    }
    assert configuration.n_workers == 3


def test_cfg_file_is_merged_under_cli_args(inputs, tmp_path: Path) -> None:
    cfg = tmp_path / "match.ini"
    cfg.write_text(
        "[MATCH]\nalgorithm = nearest\nangle = 30\n\n[GLOBAL]\noutput_mode = verbose\n",
        encoding="utf-8",
    )
    configuration = MatchConfiguration(_match_cfg(inputs, cfg_path=str(cfg), angle=20.0))
    assert configuration.algorithm == "nearest"
    assert configuration.algorithm_params() == {"max_angle": 20.0}
    assert configuration.output_mode == "verbose"
    assert configuration.cfg_source == str(cfg)


@pytest.mark.parametrize("extra, message", [
    ({"algorithm": "hungarian"}, "Invalid algorithm"),
    ({"algorithm": "nearest", "cost": "cost.nii.gz"}, "cost_file"),
    ({"algorithm": "nearest", "max_origins": 2}, "max_origins"),
    ({"algorithm": "ni2022", "angle": 30.0}, "angle"),
    ({"algorithm": "ismrm2018", "constants": [1.0, 1.0]}, "alpha"),
    ({"max_origins": 0}, "max_origins"),
    ({"n_workers": 0}, "n_workers"),
    ({"output_mode": "loud"}, "output_mode"),
])
def test_match_rejects_invalid_options(inputs, extra: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        MatchConfiguration(_match_cfg(inputs, **extra))


def test_match_rejects_missing_input_and_existing_output(inputs) -> None:
    inputs["source"].unlink()
    with pytest.raises(ConfigurationError, match="File not found"):
        MatchConfiguration(_match_cfg(inputs))

    inputs["source"].write_bytes(b"dummy")
    inputs["output"].mkdir()
    with pytest.raises(ConfigurationError, match="already exists"):
        MatchConfiguration(_match_cfg(inputs))


def test_match_requires_sections() -> None:
    with pytest.raises(ConfigurationError, match=r"\[INPUT\]"):
        MatchConfiguration(configparser.ConfigParser())


def test_project_defaults(inputs) -> None:
    configuration = ProjectConfiguration(_project_cfg(inputs))
    assert configuration.metric == "mean"
    assert configuration.fill == 0.0
    assert configuration.nan_many2one is False
    assert configuration.nan_one2many is False
    assert configuration.weights_path is None
    assert configuration.output_path == str(inputs["directory_out"] / "fd_from_source.nii.gz")


def test_project_flags(inputs) -> None:
    configuration = ProjectConfiguration(
        _project_cfg(inputs, fill=-1.0, nan_many2one=True, weighted=str(inputs["source"]))
    )
    assert configuration.fill == -1.0
    assert configuration.nan_many2one is True
    assert configuration.nan_one2many is False
    assert configuration.weights_path == str(inputs["source"])


@pytest.mark.parametrize("extra, message", [
    ({"metric": "median"}, "Invalid metric"),
    ({"data_out": "sub/fd.nii.gz"}, "file name only"),
    ({"data_out": "fd.nii.gz"}, "already exists"),
])
def test_project_rejects_invalid_options(inputs, extra: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        ProjectConfiguration(_project_cfg(inputs, **extra))


def test_project_requires_existing_target_directory(inputs, tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Target fixel directory not found"):
        ProjectConfiguration(_project_cfg(inputs, directory_out=str(tmp_path / "missing")))


def test_project_rejects_bad_boolean(inputs, tmp_path: Path) -> None:
    cfg = tmp_path / "project.ini"
    cfg.write_text("[PROJECT]\nnan_one2many = maybe\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="nan_one2many"):
        ProjectConfiguration(_project_cfg(inputs, cfg_path=str(cfg)))
