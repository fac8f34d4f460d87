"""
External collaborators of the kpatch build pipeline.

This module wraps the command runner, the distribution package manager,
binutils and the kpatch ELF tools behind narrow interfaces.
"""

from .command_runner import CommandRunner, CommandResult
from .package_manager import PackageManager, YumPackageManager
from .external_tools import (
    Binutils,
    ObjectDiffTool,
    PatchSectionAnnotator,
    SymbolLinker,
    verify_tools
)

__all__ = [
    'CommandRunner',
    'CommandResult',
    'PackageManager',
    'YumPackageManager',
    'Binutils',
    'ObjectDiffTool',
    'PatchSectionAnnotator',
    'SymbolLinker',
    'verify_tools'
]
