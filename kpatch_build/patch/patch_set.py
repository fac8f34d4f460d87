#!/usr/bin/env python3
"""
The patch file a kpatch build runs against.
"""

from pathlib import Path
from typing import Union
from dataclasses import dataclass

PATCH_SUFFIXES = (".patch", ".diff")


def patch_name(filename: str) -> str:
    """Logical name of a patch file: its base name without .patch or .diff"""
    name = Path(filename).name
    for suffix in PATCH_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[:-len(suffix)]
    return name


@dataclass(frozen=True)
class PatchSet:
    """A unified diff applied to the kernel tree."""
    path: Path
    name: str

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "PatchSet":
        absolute = Path(path).expanduser().resolve()
        return cls(path=absolute, name=patch_name(absolute.name))

    @property
    def module_name(self) -> str:
        return f"kpatch-{self.name}.ko"
