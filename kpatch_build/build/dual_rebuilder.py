#!/usr/bin/env python3
"""
Original/patched object rebuilds for the kpatch build pipeline.

Every changed object is recompiled on its own with each function and data
item in a separate section, stripped of debug info and staged. This is
done once with the patch applied and once after it is reverted, always
against the same tree and never concurrently.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Union
from dataclasses import dataclass

from kpatch_build.build.kernel_builder import KernelBuilder
from kpatch_build.errors import MissingArtifactError, PipelineError
from kpatch_build.patch.change_detector import ChangeSet
from kpatch_build.patch.patch_engine import PatchEngine, TreeState
from kpatch_build.tools.external_tools import Binutils
from kpatch_build.utils.file_utils import copy_into, ensure_directory, remove_path


class ArtifactVariant(Enum):
    """Which side of the patch an object was built from."""
    ORIGINAL = "orig"
    PATCHED = "patched"

    @property
    def required_state(self) -> TreeState:
        return TreeState.PATCHED if self is ArtifactVariant.PATCHED else TreeState.CLEAN


@dataclass
class BuildArtifact:
    """One stripped object staged for diffing."""
    object_path: str
    variant: ArtifactVariant
    staged_path: Path

    @property
    def name(self) -> str:
        return self.staged_path.name


class DualTreeRebuilder:
    """Rebuilds a change set into orig/ and patched/ staging directories."""

    def __init__(self, builder: KernelBuilder, binutils: Binutils, patch_engine: PatchEngine,
                 staging_root: Union[str, Path], cflags: str):
        self.builder = builder
        self.binutils = binutils
        self.patch_engine = patch_engine
        self.staging_root = Path(staging_root)
        self.cflags = cflags
        self.logger = logging.getLogger(__name__)

    def staging_dir(self, variant: ArtifactVariant) -> Path:
        return self.staging_root / variant.value

    @staticmethod
    def check_unique_names(changeset: ChangeSet):
        """Staged objects are keyed by base name, so base names must not repeat."""
        seen: Dict[str, str] = {}
        for obj in changeset:
            name = Path(obj).name
            if name in seen:
                raise PipelineError(
                    f"Changed objects {seen[name]} and {obj} share the base name {name}"
                )
            seen[name] = obj

    def rebuild(self, changeset: ChangeSet, variant: ArtifactVariant) -> List[BuildArtifact]:
        """
        Rebuild every object in the change set for one variant.

        Args:
            changeset: Objects to rebuild, relative to the tree root
            variant: PATCHED requires the patch applied, ORIGINAL requires it reverted

        Returns:
            Staged artifacts in change set order
        """
        self.patch_engine.require(variant.required_state)
        self.check_unique_names(changeset)

        staging = ensure_directory(self.staging_dir(variant))
        self.logger.info(f"Rebuilding {len(changeset)} {variant.name.lower()} object(s)")

        artifacts = []
        for obj in changeset:
            artifacts.append(self.rebuild_object(obj, variant, staging))
        return artifacts

    def rebuild_object(self, obj: str, variant: ArtifactVariant, staging: Path) -> BuildArtifact:
        object_file = self.builder.source_path / obj
        remove_path(object_file)

        self.builder.build_object(obj, cflags=self.cflags)
        if not object_file.exists():
            raise MissingArtifactError(f"Rebuild did not produce {object_file}")

        self.binutils.strip_debug(object_file)
        staged = copy_into(object_file, staging)
        self.logger.debug(f"Staged {variant.value} object {obj} -> {staged}")

        return BuildArtifact(object_path=obj, variant=variant, staged_path=staged)
