#!/usr/bin/env python3
"""
Per-object differencing for the kpatch build pipeline.

The diff algorithm belongs to the external create-diff-object tool; this
module pairs the staged objects by base name and runs the tool once per
pair, stopping at the first failure.
"""

import logging
from pathlib import Path
from typing import List, Union
from dataclasses import dataclass

from kpatch_build.errors import MissingArtifactError
from kpatch_build.tools.external_tools import ObjectDiffTool
from kpatch_build.utils.file_utils import ensure_directory

PathLike = Union[str, Path]


@dataclass
class DeltaObject:
    """Sections that differ between an original and a patched object."""
    name: str
    original: Path
    patched: Path
    path: Path


def _object_names(directory: Path) -> List[str]:
    if not directory.is_dir():
        return []
    return sorted(entry.name for entry in directory.iterdir() if entry.is_file())


class ObjectDiffer:
    """Runs the object diff tool over matching orig/patched pairs."""

    def __init__(self, diff_tool: ObjectDiffTool):
        self.diff_tool = diff_tool
        self.logger = logging.getLogger(__name__)

    def match_pairs(self, original_dir: PathLike, patched_dir: PathLike) -> List[str]:
        """
        Base names present in both staging directories.

        Raises:
            MissingArtifactError: if either side lacks a counterpart
        """
        original_names = _object_names(Path(original_dir))
        patched_names = _object_names(Path(patched_dir))

        missing_patched = sorted(set(original_names) - set(patched_names))
        missing_original = sorted(set(patched_names) - set(original_names))
        if missing_patched or missing_original:
            problems = []
            if missing_patched:
                problems.append(f"no patched object for {', '.join(missing_patched)}")
            if missing_original:
                problems.append(f"no original object for {', '.join(missing_original)}")
            raise MissingArtifactError("; ".join(problems))

        return original_names

    def diff_all(self, original_dir: PathLike, patched_dir: PathLike,
                 output_dir: PathLike) -> List[DeltaObject]:
        """Diff every pair into output_dir, keyed by the same base name."""
        original_dir = Path(original_dir)
        patched_dir = Path(patched_dir)
        output_dir = ensure_directory(output_dir)

        names = self.match_pairs(original_dir, patched_dir)
        self.logger.info("Extracting new and modified ELF sections")

        deltas = []
        for name in names:
            original = original_dir / name
            patched = patched_dir / name
            output = self.diff_tool.create_diff(original, patched, output_dir / name)
            deltas.append(DeltaObject(name=name, original=original, patched=patched, path=output))
        return deltas
