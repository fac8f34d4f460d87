#!/usr/bin/env python3
"""
Change set detection for the kpatch build pipeline.

After the patch is applied, vmlinux is rebuilt with its output captured.
The objects the compiler touched during that rebuild are the ones the
patch changed.
"""

import re
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Iterator, List, Union

from kpatch_build.build.kernel_builder import KernelBuilder
from kpatch_build.patch.patch_engine import PatchEngine, PatchResult
from kpatch_build.patch.patch_set import PatchSet

# Rebuilt on every build with a new timestamp
VERSION_OBJECT = "init/version.o"


class ChangeSet:
    """Ordered, duplicate-free list of changed object paths."""

    def __init__(self, objects: Iterable[str] = ()):
        self._objects: List[str] = []
        for obj in objects:
            self.add(obj)

    def add(self, obj: str) -> bool:
        if obj == VERSION_OBJECT or obj in self._objects:
            return False
        self._objects.append(obj)
        return True

    @property
    def objects(self) -> List[str]:
        return list(self._objects)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._objects))

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, obj: object) -> bool:
        return obj in self._objects

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ChangeSet):
            return self._objects == other._objects
        return NotImplemented

    def __repr__(self) -> str:
        return f"ChangeSet({self._objects!r})"


class ChangeDetectionStrategy(ABC):
    """Derives changed object paths from a captured build log."""

    @abstractmethod
    def detect_changes(self, build_log: Union[str, Path]) -> List[str]:
        """Return changed object paths in discovery order."""


class BuildLogScanner(ChangeDetectionStrategy):
    """Scans kbuild's short-form compiler lines, e.g. '  CC      kernel/fork.o'."""

    CC_LINE = re.compile(r'^\s*CC\s+(?:\[M\]\s+)?(\S+\.o)\s*$')
    EXCLUDED_SUFFIXES = (".mod.o",)

    def detect_changes(self, build_log: Union[str, Path]) -> List[str]:
        changed = []
        with open(build_log, 'r', errors='replace') as f:
            for line in f:
                match = self.CC_LINE.match(line)
                if not match:
                    continue
                obj = match.group(1)
                if obj == VERSION_OBJECT or obj.endswith(self.EXCLUDED_SUFFIXES):
                    continue
                if obj not in changed:
                    changed.append(obj)
        return changed


class ChangeSetDetector:
    """Applies a patch, rebuilds vmlinux and works out which objects changed."""

    def __init__(self, builder: KernelBuilder, patch_engine: PatchEngine,
                 strategy: ChangeDetectionStrategy = None):
        self.builder = builder
        self.patch_engine = patch_engine
        self.strategy = strategy or BuildLogScanner()
        self.logger = logging.getLogger(__name__)
        self.last_patch_result: PatchResult = None

    def apply(self, tree, patch_set: PatchSet, capture_log: Union[str, Path]) -> ChangeSet:
        """
        Apply the patch to the tree and rebuild vmlinux.

        Args:
            tree: SourceTree the builder and patch engine operate on
            patch_set: Patch to apply
            capture_log: File receiving the rebuild output

        Returns:
            ChangeSet of objects recompiled by the rebuild
        """
        self.logger.info(f"Applying patch {patch_set.path.name} to {tree.path}")
        self.last_patch_result = self.patch_engine.apply(patch_set)

        self.logger.info("Building patched kernel")
        self.builder.build_vmlinux(capture_file=capture_log)

        self.logger.info("Detecting changed objects")
        changeset = ChangeSet(self.strategy.detect_changes(capture_log))
        for obj in changeset:
            self.logger.debug(f"Changed object: {obj}")
        return changeset

    def revert(self, tree, patch_set: PatchSet) -> PatchResult:
        """Reverse the patch so the tree is back to the baseline sources."""
        self.logger.debug(f"Reverting patch {patch_set.path.name} in {tree.path}")
        return self.patch_engine.revert(patch_set)
