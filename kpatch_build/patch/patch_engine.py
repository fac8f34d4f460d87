#!/usr/bin/env python3
"""
Patch application engine for the kpatch build pipeline.

The source tree carries exactly one patch state at a time. The engine
makes that state explicit (clean -> patched -> clean) so every build
step can check it is acting on the tree it expects.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import List, Union
from dataclasses import dataclass

from kpatch_build.errors import CommandFailedError, PatchStateError
from kpatch_build.patch.patch_set import PatchSet
from kpatch_build.tools.command_runner import CommandRunner


class TreeState(Enum):
    """Patch state of the kernel source tree."""
    CLEAN = "clean"
    PATCHED = "patched"


class PatchStatus(Enum):
    """Status of a patch command."""
    SUCCESS = "success"
    FAILED = "failed"
    ROLLBACK_SUCCESS = "rollback_success"


@dataclass
class PatchResult:
    """Result of a patch or rollback operation."""
    status: PatchStatus
    patch_file: str
    message: str
    output: List[str] = None

    def __post_init__(self):
        if self.output is None:
            self.output = []


class PatchEngine:
    """
    Applies and reverts one patch against a kernel source tree.
    """

    def __init__(self, kernel_source_path: Union[str, Path], runner: CommandRunner,
                 strict: bool = False):
        """
        Initialize the patch engine.

        Args:
            kernel_source_path: Path to kernel source directory
            runner: Command runner used for the patch tool
            strict: Treat a failed patch application as fatal
        """
        self.kernel_source_path = Path(kernel_source_path)
        self.runner = runner
        self.strict = strict
        self.state = TreeState.CLEAN
        self.logger = logging.getLogger(__name__)

    def require(self, state: TreeState):
        """Raise PatchStateError unless the tree is in the given state."""
        if self.state is not state:
            raise PatchStateError(
                f"Source tree is {self.state.value}, expected {state.value}"
            )

    def apply(self, patch_set: PatchSet) -> PatchResult:
        """
        Apply the patch to a clean tree.

        A non-zero exit from the patch tool is reported but only raised when
        the engine is strict; the rebuild that follows decides the outcome.
        """
        self.require(TreeState.CLEAN)

        result = self.runner.run(self._build_patch_command(patch_set),
                                 cwd=self.kernel_source_path, check=False)
        self.state = TreeState.PATCHED

        if result.success:
            return PatchResult(
                status=PatchStatus.SUCCESS,
                patch_file=str(patch_set.path),
                message="Patch applied successfully",
                output=result.output
            )

        if self.strict:
            raise CommandFailedError(result.command, result.returncode, str(self.kernel_source_path))

        self.logger.warning(
            f"Patch tool exited with status {result.returncode} for {patch_set.path}, continuing"
        )
        return PatchResult(
            status=PatchStatus.FAILED,
            patch_file=str(patch_set.path),
            message=f"Patch tool exited with status {result.returncode}",
            output=result.output
        )

    def revert(self, patch_set: PatchSet) -> PatchResult:
        """Reverse the patch, returning the tree to its clean state."""
        self.require(TreeState.PATCHED)

        result = self.runner.run(self._build_patch_command(patch_set, reverse=True),
                                 cwd=self.kernel_source_path)
        self.state = TreeState.CLEAN

        return PatchResult(
            status=PatchStatus.ROLLBACK_SUCCESS,
            patch_file=str(patch_set.path),
            message="Patch rolled back successfully",
            output=result.output
        )

    def _build_patch_command(self, patch_set: PatchSet, reverse: bool = False) -> List[str]:
        """Build the patch command with appropriate options."""
        cmd = ['patch', '-p1']

        if reverse:
            cmd.append('-R')
        else:
            cmd.append('-N')  # skip already applied hunks

        cmd.extend(['-i', str(patch_set.path)])

        return cmd
