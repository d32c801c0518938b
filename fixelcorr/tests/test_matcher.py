from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from fixelcorr.core.validation import DataError
from fixelcorr.correspondence.algorithms import ISMRM2018, NI2022, Nearest
from fixelcorr.correspondence.fixel import FixelDataset
from fixelcorr.correspondence.matcher import Matcher
from fixelcorr.tests._fixels import layout, write_fixel_dir


SHAPE = (3, 2, 1)

SOURCE = {
    (0, 0, 0): [((1, 0, 0), 0.4), ((0, 1, 0), 0.6)],
    (0, 1, 0): [((0, 0, 1), 0.5)],
    # (1, 0, 0) has no source fixels.
    (1, 1, 0): [((-1, 0, 0), 0.8)],
    (2, 0, 0): [((1, 1, 0), 0.3), ((1, -1, 0), 0.3), ((0, 0, 1), 0.2)],
}

TARGET = {
    (0, 0, 0): [((0.9, 0.1, 0), 0.5)],
    (1, 0, 0): [((1, 0, 0), 0.7)],
    (1, 1, 0): [((1, 0.05, 0), 0.8), ((0, 0, 1), 0.1)],
    (2, 0, 0): [((1, 0, 0), 0.6), ((0, 0.2, 1), 0.2)],
}


def _dataset(voxels: dict, shape=SHAPE, name: str = "dataset") -> FixelDataset:
    counts, offsets, directions, values = layout(shape, voxels)
    return FixelDataset(counts, offsets, directions, values, name=name)


def _voxel_of(dataset: FixelDataset, fixel: int) -> tuple:
    for voxel in np.ndindex(*dataset.shape):
        start = dataset.offset(voxel)
        if start <= fixel < start + int(dataset.counts[voxel]):
            return voxel
    raise AssertionError(f"fixel {fixel} not in any voxel")


@pytest.mark.parametrize("algorithm", [Nearest(), ISMRM2018(), NI2022()], ids=lambda a: a.name)
def test_matching_is_spatially_local(algorithm) -> None:
    source, target = _dataset(SOURCE), _dataset(TARGET)
    mapping = Matcher(source, target, algorithm).run(n_workers=2)
    assert len(mapping) == target.nfixels
    assert mapping.source_fixels == source.nfixels
    for t, origins in enumerate(mapping):
        for s in origins:
            assert _voxel_of(source, s) == _voxel_of(target, t)


def test_voxel_without_source_fixels_gets_empty_entries() -> None:
    source, target = _dataset(SOURCE), _dataset(TARGET)
    mapping = Matcher(source, target, NI2022()).run(n_workers=1)
    empty_target = target.offset((1, 0, 0))
    assert mapping[empty_target] == ()


def test_nearest_end_to_end_voxel() -> None:
    source, target = _dataset(SOURCE), _dataset(TARGET)
    mapping = Matcher(source, target, Nearest(45.0)).run(n_workers=1)
    assert mapping[target.offset((0, 0, 0))] == (source.offset((0, 0, 0)),)


def test_worker_count_does_not_change_the_result() -> None:
    source, target = _dataset(SOURCE), _dataset(TARGET)
    serial = Matcher(source, target, NI2022()).run(n_workers=1)
    parallel = Matcher(source, target, NI2022()).run(n_workers=3)
    assert serial == parallel


def test_cost_volume_covers_every_voxel() -> None:
    source, target = _dataset(SOURCE), _dataset(TARGET)
    algorithm = ISMRM2018()
    algorithm.allocate_cost_volume(target.shape)
    Matcher(source, target, algorithm).run(n_workers=1)
    # Only unmatched target density remains in the voxel without sources.
    assert algorithm.cost_volume[1, 0, 0] == pytest.approx(0.7)
    # Only unmatched source density remains in the voxel without targets.
    assert algorithm.cost_volume[0, 1, 0] == pytest.approx(0.5)
    assert algorithm.cost_volume[1, 1, 0] < 0.8


def test_remapped_fixels_follow_the_target_layout() -> None:
    source, target = _dataset(SOURCE), _dataset(TARGET)
    matcher = Matcher(source, target, Nearest(45.0))
    matcher.run(n_workers=1)
    directions, densities = matcher.remapped_fixels()
    assert directions.shape == (target.nfixels, 3)

    flipped = target.offset((1, 1, 0))
    # Source (-1, 0, 0) is flipped into the hemisphere of target (1, 0.05, 0).
    np.testing.assert_allclose(directions[flipped], [1.0, 0.0, 0.0], atol=1e-12)
    assert densities[flipped] == pytest.approx(0.8)

    unmatched = target.offset((1, 0, 0))
    np.testing.assert_allclose(directions[unmatched], target.directions[unmatched])
    assert densities[unmatched] == 0.0


def test_remapped_density_splits_fan_out() -> None:
    source = _dataset({(0, 0, 0): [((1, 0, 0), 1.0)]}, shape=(1, 1, 1))
    target = _dataset(
        {(0, 0, 0): [((1, 0.17, 0), 0.5), ((1, -0.17, 0), 0.5)]}, shape=(1, 1, 1)
    )
    matcher = Matcher(source, target, ISMRM2018())
    mapping = matcher.run(n_workers=1)
    assert list(mapping) == [(0,), (0,)]
    _, densities = matcher.remapped_fixels()
    np.testing.assert_allclose(densities, [0.5, 0.5])


def test_export_remapped_writes_a_fixel_directory(tmp_path: Path) -> None:
    source_file = write_fixel_dir(tmp_path / "source", SOURCE, shape=SHAPE)
    target_file = write_fixel_dir(tmp_path / "target", TARGET, shape=SHAPE)
    source = FixelDataset.from_data_file(source_file)
    target = FixelDataset.from_data_file(target_file)

    matcher = Matcher(source, target, Nearest(45.0))
    matcher.run(n_workers=1)
    out = Path(matcher.export_remapped(tmp_path / "remapped", "fd.nii.gz"))

    remapped = FixelDataset.from_data_file(out / "fd.nii.gz")
    assert remapped.shape == target.shape
    np.testing.assert_array_equal(remapped.counts, target.counts)
    assert remapped.values[target.offset((1, 1, 0))] == pytest.approx(0.8, rel=1e-6)


def test_grid_mismatch_is_rejected() -> None:
    source = _dataset(SOURCE)
    target = _dataset({(0, 0, 0): [((1, 0, 0), 1.0)]}, shape=(1, 1, 1))
    with pytest.raises(DataError):
        Matcher(source, target, Nearest())

