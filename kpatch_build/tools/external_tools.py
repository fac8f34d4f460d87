#!/usr/bin/env python3
"""
Adapters for the external kpatch tools and binutils.

Each adapter has a fixed, file-path based contract: it takes input paths,
writes output paths and fails the run if the tool exits non-zero.
"""

import shutil
import logging
from pathlib import Path
from typing import Iterable, List, Union

from kpatch_build.errors import MissingArtifactError
from kpatch_build.tools.command_runner import CommandRunner

PathLike = Union[str, Path]


def verify_tools(names: Iterable[str]) -> List[str]:
    """
    Check that tools are available.

    Args:
        names: Executable names or absolute paths

    Returns:
        Names that could not be found
    """
    return [name for name in names if not shutil.which(str(name))]


class Binutils:
    """Thin wrapper over strip and ld."""

    REQUIRED_TOOLS = ["strip", "ld"]

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def strip_debug(self, path: PathLike):
        self.runner.run(["strip", "-d", str(path)])

    def link_relocatable(self, output: PathLike, inputs: Iterable[PathLike]):
        """Link objects into a single relocatable object."""
        self.runner.run(["ld", "-r", "-o", str(output)] + [str(i) for i in inputs])


class KpatchTool:
    """Base class for executables shipped in the kpatch tools directory."""

    executable = ""

    def __init__(self, runner: CommandRunner, tools_dir: PathLike):
        self.runner = runner
        self.tools_dir = Path(tools_dir)
        self.logger = logging.getLogger(__name__)

    @property
    def path(self) -> Path:
        return self.tools_dir / self.executable

    def _run(self, *args: PathLike):
        self.runner.run([str(self.path)] + [str(arg) for arg in args])


class ObjectDiffTool(KpatchTool):
    """create-diff-object: original + patched object -> delta object"""

    executable = "create-diff-object"

    def create_diff(self, original: PathLike, patched: PathLike, output: PathLike) -> Path:
        self._run(original, patched, output)
        output = Path(output)
        if not output.exists():
            raise MissingArtifactError(f"{self.executable} did not produce {output}")
        return output


class PatchSectionAnnotator(KpatchTool):
    """add-patch-section: embeds patch metadata into a relocatable object"""

    executable = "add-patch-section"

    def annotate(self, relocatable: PathLike, vmlinux: PathLike):
        self._run(relocatable, vmlinux)


class SymbolLinker(KpatchTool):
    """link-vmlinux-syms: resolves a module's symbols against vmlinux"""

    executable = "link-vmlinux-syms"

    def link(self, module: PathLike, vmlinux: PathLike):
        self._run(module, vmlinux)
