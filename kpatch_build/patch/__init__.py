"""
Patch handling for the kpatch build pipeline.

This module provides the patch file model, the patch state machine that
applies and reverts a patch against the kernel tree, and detection of the
objects a patch changes.
"""

from .patch_set import PatchSet
from .patch_engine import PatchEngine, TreeState
from .change_detector import ChangeSet, ChangeSetDetector, ChangeDetectionStrategy, BuildLogScanner

__all__ = [
    'PatchSet',
    'PatchEngine',
    'TreeState',
    'ChangeSet',
    'ChangeSetDetector',
    'ChangeDetectionStrategy',
    'BuildLogScanner'
]
