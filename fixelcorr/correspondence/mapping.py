"""Sparse many-to-many fixel correspondence and its on-disk representation.

A mapping holds, for every target fixel, the (possibly empty) list of source
fixels whose data contribute to it. On disk it is a directory containing

- ``mapping.json``: format version, source/target fixel counts, metadata
- ``index.npy``: (T, 2) uint32, per target fixel (count, offset)
- ``fixels.npy``: (K,) uint32, concatenated source fixel indices
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Iterable, Optional

import numpy as np

from fixelcorr.core.io import require_new_path
from fixelcorr.core.validation import MappingError


FORMAT_VERSION = 1
HEADER_NAME = "mapping.json"
INDEX_NAME = "index.npy"
FIXELS_NAME = "fixels.npy"


class Mapping:
    """Target fixel -> source fixels correspondence.

    Entries are only mutated while a Matcher assembles the mapping; each
    voxel writes a disjoint range of target fixels, so per-entry assignment
    needs no locking.
    """

    def __init__(self, source_fixels: int, target_fixels: int) -> None:
        if int(source_fixels) < 0 or int(target_fixels) < 0:
            raise ValueError("Fixel counts must be non-negative")
        self.source_fixels = int(source_fixels)
        self.target_fixels = int(target_fixels)
        self._entries: list[tuple[int, ...]] = [()] * self.target_fixels

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> tuple[int, ...]:
        return self._entries[index]

    def __setitem__(self, index: int, sources: Iterable[int]) -> None:
        if not 0 <= int(index) < self.target_fixels:
            raise IndexError(f"Target fixel index {index} out of range [0, {self.target_fixels})")
        entry: list[int] = []
        for s in sources:
            s = int(s)
            if not 0 <= s < self.source_fixels:
                raise IndexError(f"Source fixel index {s} out of range [0, {self.source_fixels})")
            if s not in entry:
                entry.append(s)
        self._entries[int(index)] = tuple(entry)

    def __iter__(self):
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return (
            self.source_fixels == other.source_fixels
            and self.target_fixels == other.target_fixels
            and all(set(a) == set(b) for a, b in zip(self._entries, other._entries))
        )

    def __repr__(self) -> str:
        return (
            f"Mapping(source_fixels={self.source_fixels}, target_fixels={self.target_fixels}, "
            f"links={self.nlinks()})"
        )

    def nlinks(self) -> int:
        return sum(len(e) for e in self._entries)

    def objectives_per_source(self) -> np.ndarray:
        """Number of target fixels fed by each source fixel."""
        return np.array([len(targets) for targets in self.inverse()], dtype=np.int64)

    def inverse(self) -> list[list[int]]:
        """For every source fixel, the ascending list of target fixels it feeds."""
        result: list[list[int]] = [[] for _ in range(self.source_fixels)]
        for t, entry in enumerate(self._entries):
            for s in entry:
                result[s].append(t)
        return result

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def save(self, directory: str | os.PathLike, metadata: Optional[dict[str, Any]] = None) -> str:
        """Write the mapping into a new directory.

        The directory is populated under a temporary sibling and renamed into
        place, so an interrupted save never leaves a partial mapping behind.
        """
        final = require_new_path(directory, "mapping directory")
        final.parent.mkdir(parents=True, exist_ok=True)

        counts = np.array([len(e) for e in self._entries], dtype=np.uint32)
        offsets = np.zeros(self.target_fixels, dtype=np.uint32)
        if self.target_fixels:
            offsets[1:] = np.cumsum(counts[:-1], dtype=np.uint64).astype(np.uint32)
        fixels = np.fromiter(
            (s for e in self._entries for s in e), dtype=np.uint32, count=int(counts.sum())
        )
        header = {
            "format_version": FORMAT_VERSION,
            "source_fixels": self.source_fixels,
            "target_fixels": self.target_fixels,
            "links": int(fixels.shape[0]),
            "metadata": metadata or {},
        }

        staging = Path(tempfile.mkdtemp(prefix=f".{final.name}.", dir=str(final.parent)))
        try:
            index = np.stack([counts, offsets], axis=1)
            np.save(staging / INDEX_NAME, index)
            np.save(staging / FIXELS_NAME, fixels)
            with open(staging / HEADER_NAME, "w", encoding="utf-8") as f:
                json.dump(header, f, indent=2)
            os.rename(staging, final)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logging.info(f"Mapping saved: {final} ({self.target_fixels:,} target fixels, {header['links']:,} links)")
        return str(final)

    @classmethod
    def load(cls, directory: str | os.PathLike) -> "Mapping":
        """Read and validate a mapping directory.

        Raises
        ------
        MappingError
            If the directory is incomplete, internally inconsistent, or
            references a source fixel outside the declared source count.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise MappingError(f"Fixel correspondence directory not found: {directory}")

        header_path = directory / HEADER_NAME
        try:
            with open(header_path, "r", encoding="utf-8") as f:
                header = json.load(f)
        except FileNotFoundError:
            raise MappingError(f"Missing {HEADER_NAME} in fixel correspondence directory: {directory}")
        except json.JSONDecodeError as e:
            raise MappingError(f"Corrupted {HEADER_NAME} in {directory}: {e}") from e

        try:
            version = int(header["format_version"])
            source_fixels = int(header["source_fixels"])
            target_fixels = int(header["target_fixels"])
        except (KeyError, TypeError, ValueError) as e:
            raise MappingError(f"Incomplete {HEADER_NAME} in {directory}: {e}") from e
        if version != FORMAT_VERSION:
            raise MappingError(
                f"Unsupported mapping format version {version} (expected {FORMAT_VERSION}): {directory}"
            )

        for name in (INDEX_NAME, FIXELS_NAME):
            if not (directory / name).exists():
                raise MappingError(f"Missing {name} in fixel correspondence directory: {directory}")

        try:
            index = np.load(directory / INDEX_NAME, allow_pickle=False).astype(np.int64)
            fixels = np.load(directory / FIXELS_NAME, allow_pickle=False).astype(np.int64).reshape(-1)
        except (OSError, ValueError) as e:
            raise MappingError(f"Could not read mapping arrays in {directory}: {e}") from e

        if index.shape != (target_fixels, 2):
            raise MappingError(
                f"Mapping index has shape {tuple(index.shape)}; expected ({target_fixels}, 2) "
                f"from {HEADER_NAME}: {directory}"
            )
        counts, offsets = index[:, 0], index[:, 1]
        if np.any(counts < 0):
            raise MappingError(f"Mapping index holds negative link counts: {directory}")
        if int(counts.sum()) != fixels.shape[0]:
            raise MappingError(
                f"Mapping index accounts for {int(counts.sum()):,} links but "
                f"{fixels.shape[0]:,} are stored: {directory}"
            )
        expected_offsets = np.concatenate([[0], np.cumsum(counts)[:-1]]) if target_fixels else counts
        if np.any(offsets != expected_offsets):
            raise MappingError(f"Mapping index offsets are not contiguous: {directory}")
        if fixels.size and (fixels.min() < 0 or fixels.max() >= source_fixels):
            bad = int(np.sum((fixels < 0) | (fixels >= source_fixels)))
            raise MappingError(
                f"Mapping references {bad:,} source fixel index(es) outside [0, {source_fixels}): {directory}"
            )

        mapping = cls(source_fixels, target_fixels)
        mapping._entries = [
            tuple(int(s) for s in fixels[o:o + c]) for c, o in zip(counts, offsets)
        ]
        logging.debug(f"Loaded {mapping!r} from {directory}")
        return mapping
