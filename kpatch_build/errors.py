"""
Exceptions raised by the kpatch build pipeline.

Every pipeline error is fatal: nothing is retried, the orchestrator
reports the failure and keeps the log and working directory around.
"""

from typing import List, Optional


class PipelineError(RuntimeError):
    """Base class for fatal build pipeline errors."""


class CommandFailedError(PipelineError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: List[str], returncode: int, cwd: Optional[str] = None):
        self.command = list(command)
        self.returncode = returncode
        self.cwd = cwd
        super().__init__(f"Command failed with exit status {returncode}: {' '.join(self.command)}")


class PatchStateError(PipelineError):
    """The source tree is not in the patch state an operation requires."""


class MissingArtifactError(PipelineError):
    """An expected build artifact is missing."""


class CacheLockedError(PipelineError):
    """Another run holds the cache for the same kernel release."""
