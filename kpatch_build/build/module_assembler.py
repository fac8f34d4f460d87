#!/usr/bin/env python3
"""
Module assembly for the kpatch build pipeline.

Builds the core kpatch.ko runtime and the per-patch module from the
delta objects, using the module Makefiles shipped in the data directory.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Sequence, Union
from dataclasses import dataclass

from kpatch_build.build.kernel_builder import KernelBuilder
from kpatch_build.build.object_differ import DeltaObject
from kpatch_build.config.build_config import BuildConfig
from kpatch_build.errors import MissingArtifactError
from kpatch_build.patch.patch_set import PatchSet
from kpatch_build.tools.external_tools import Binutils, PatchSectionAnnotator, SymbolLinker
from kpatch_build.utils.file_utils import copy_tree

CORE_MODULE_NAME = "kpatch.ko"
RELOCATABLE_NAME = "output.o"


class ModuleKind(Enum):
    """Kind of output module."""
    CORE = "core"
    PATCH = "patch"


@dataclass
class OutputModule:
    """A loadable kernel module produced by the pipeline."""
    kind: ModuleKind
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class AssembledModules:
    """Core and patch modules of one build."""
    core: OutputModule
    patch: OutputModule

    def __iter__(self):
        return iter([self.core, self.patch])


class ModuleAssembler:
    """Links delta objects and builds the two output modules."""

    def __init__(self, config: BuildConfig, builder: KernelBuilder, binutils: Binutils,
                 annotator: PatchSectionAnnotator, linker: SymbolLinker):
        self.config = config
        self.builder = builder
        self.binutils = binutils
        self.annotator = annotator
        self.linker = linker
        self.logger = logging.getLogger(__name__)

    def assemble(self, deltas: Sequence[DeltaObject], tree, patch_set: PatchSet,
                 work_dir: Union[str, Path]) -> AssembledModules:
        """
        Build kpatch.ko and kpatch-<name>.ko.

        Args:
            deltas: Delta objects to link into the patch module
            tree: Baseline SourceTree
            patch_set: Patch the module is named after
            work_dir: Directory the module sources are copied into

        Returns:
            AssembledModules with paths inside work_dir
        """
        if not deltas:
            raise MissingArtifactError("No delta objects to assemble")

        work_dir = Path(work_dir)
        core = self.build_core_module(tree, work_dir / "core")
        patch = self.build_patch_module(deltas, tree, patch_set, work_dir / "patch", core)
        return AssembledModules(core=core, patch=patch)

    def build_core_module(self, tree, core_dir: Path) -> OutputModule:
        """The core module depends only on the baseline tree."""
        self.logger.info(f"Building core module: {CORE_MODULE_NAME}")
        copy_tree(self.config.data_dir / "core", core_dir)

        self.builder.build_module(core_dir, env={"KPATCH_BUILD": str(tree.path)})
        return OutputModule(ModuleKind.CORE, self._expect(core_dir / CORE_MODULE_NAME))

    def build_patch_module(self, deltas: Sequence[DeltaObject], tree, patch_set: PatchSet,
                           patch_dir: Path, core: OutputModule) -> OutputModule:
        self.logger.info(f"Building patch module: {patch_set.module_name}")
        copy_tree(self.config.data_dir / "patch", patch_dir)

        relocatable = patch_dir / RELOCATABLE_NAME
        self.binutils.link_relocatable(relocatable, [delta.path for delta in deltas])
        self.annotator.annotate(relocatable, tree.vmlinux)

        env = {
            "KPATCH_BASEDIR": str(core.path.parent),
            "KPATCH_BUILD": str(tree.path),
            "KPATCH_NAME": patch_set.name
        }
        self.builder.build_module(patch_dir, env=env)

        module = self._expect(patch_dir / patch_set.module_name)
        self.binutils.strip_debug(module)
        self.linker.link(module, tree.vmlinux)
        return OutputModule(ModuleKind.PATCH, module)

    @staticmethod
    def _expect(path: Path) -> Path:
        if not path.exists():
            raise MissingArtifactError(f"Module build did not produce {path}")
        return path
