#!/usr/bin/env python3
"""
Package manager integration for kernel source retrieval.

The pipeline only needs two things from the distribution: a prepared,
pristine source tree for the running kernel and the packages required to
build it.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from kpatch_build.config.build_config import KernelVersion
from kpatch_build.errors import MissingArtifactError
from kpatch_build.tools.command_runner import CommandRunner
from kpatch_build.utils.file_utils import ensure_directory


class PackageManager(ABC):
    """Source retrieval and build dependency installation, keyed by kernel release."""

    @abstractmethod
    def install_build_dependencies(self, version: KernelVersion):
        """Install everything needed to build the given kernel."""

    @abstractmethod
    def prepare_source(self, version: KernelVersion, work_dir: Path) -> Path:
        """Download, unpack and prepare the kernel source; return the tree root."""


class YumPackageManager(PackageManager):
    """Kernel source retrieval through yum and rpmbuild."""

    REQUIRED_PACKAGES = ["rpmdevtools", "yum-utils"]

    def __init__(self, runner: CommandRunner, use_sudo: bool = True):
        self.runner = runner
        self.use_sudo = use_sudo
        self.logger = logging.getLogger(__name__)

    def _privileged(self, command: List[str]) -> List[str]:
        return ["sudo"] + command if self.use_sudo else command

    def ensure_packages(self, packages: Optional[List[str]] = None):
        """Install any of the given packages that are missing."""
        for package in packages or self.REQUIRED_PACKAGES:
            query = self.runner.run(["rpm", "-q", "--quiet", package], check=False)
            if query.success:
                continue
            self.logger.info(f"Installing {package}")
            self.runner.run(self._privileged(["yum", "install", "-y", package]))

    def install_build_dependencies(self, version: KernelVersion):
        self.ensure_packages()
        self.logger.info(f"Installing build dependencies for kernel {version}")
        self.runner.run(self._privileged(["yum-builddep", "-y", f"kernel-{version.release}"]))

    def prepare_source(self, version: KernelVersion, work_dir: Path) -> Path:
        self.ensure_packages()
        work_dir = ensure_directory(work_dir)
        topdir = f"_topdir {work_dir}"

        self.logger.info(f"Downloading kernel source for {version}")
        self.runner.run(["yumdownloader", "--source", "--destdir", str(work_dir),
                         f"kernel-{version.release}"])

        source_rpms = sorted(work_dir.glob("kernel-*.src.rpm"))
        if not source_rpms:
            raise MissingArtifactError(f"No kernel source package downloaded into {work_dir}")

        self.logger.info("Unpacking kernel source")
        self.runner.run(["rpm", "-ivh", "--define", topdir, str(source_rpms[0])])
        self.runner.run(["rpmbuild", "--define", topdir, "-bp",
                         str(work_dir / "SPECS" / "kernel.spec")])

        trees = sorted(path for path in (work_dir / "BUILD").glob("kernel-*/linux-*")
                       if path.is_dir())
        if not trees:
            raise MissingArtifactError(f"No prepared kernel tree under {work_dir / 'BUILD'}")

        return trees[0]
