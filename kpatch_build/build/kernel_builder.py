#!/usr/bin/env python3
"""
Kernel build system invocation for the kpatch build pipeline.

The kernel's own make-based build is treated as a black box: this module
only knows how to build vmlinux, a single object, or an external module.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from kpatch_build.tools.command_runner import CommandRunner, CommandResult

PathLike = Union[str, Path]


class KernelBuilder:
    """Runs make against one kernel source tree"""

    def __init__(self, source_path: PathLike, runner: CommandRunner, jobs: int = 1):
        self.source_path = Path(source_path)
        self.runner = runner
        self.jobs = max(1, jobs)
        self.logger = logging.getLogger(__name__)

    def run_make_command(self, targets, env: Optional[Dict[str, str]] = None,
                         cwd: Optional[PathLike] = None, parallel: bool = True,
                         capture_file: Optional[PathLike] = None) -> CommandResult:
        """Run make with the given targets; fails the run on a non-zero exit"""
        command = ["make"]
        if parallel:
            command.append(f"-j{self.jobs}")
        command.extend(targets)

        return self.runner.run(
            command,
            cwd=cwd or self.source_path,
            env=env,
            capture_file=capture_file
        )

    def build_vmlinux(self, capture_file: Optional[PathLike] = None) -> CommandResult:
        """Full parallel build of the kernel binary"""
        self.logger.debug(f"Building vmlinux in {self.source_path} with {self.jobs} jobs")
        return self.run_make_command(["vmlinux"], capture_file=capture_file)

    def build_object(self, object_path: str, cflags: str = "") -> Path:
        """Recompile a single object file relative to the tree root"""
        env = {"KCFLAGS": cflags} if cflags else None
        self.run_make_command([object_path], env=env, parallel=False)
        return self.source_path / object_path

    def build_module(self, module_dir: PathLike, env: Optional[Dict[str, str]] = None) -> CommandResult:
        """Build an external module from its own Makefile directory"""
        return self.run_make_command([], env=env, cwd=module_dir)
