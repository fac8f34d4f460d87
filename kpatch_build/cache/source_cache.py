#!/usr/bin/env python3
"""
Baseline kernel source cache for the kpatch build pipeline.

Each kernel release gets one cache directory holding a compressed archive
of a fully built source tree. The tree itself is unpacked fresh from that
archive on every run and removed again afterwards.
"""

import fcntl
import shutil
import logging
import tarfile
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator
from dataclasses import dataclass

from kpatch_build.build.kernel_builder import KernelBuilder
from kpatch_build.config.build_config import BuildConfig
from kpatch_build.errors import CacheLockedError, PipelineError
from kpatch_build.tools.package_manager import PackageManager
from kpatch_build.utils.file_utils import ensure_directory, remove_path

ARCHIVE_ROOT = "src"


@dataclass
class SourceTree:
    """A kernel source tree restored or built for one release."""
    path: Path
    archive_path: Path

    @property
    def vmlinux(self) -> Path:
        return self.path / "vmlinux"

    @property
    def built(self) -> bool:
        return self.vmlinux.exists()


class SourceCache:
    """Owns the per-release source tree and its cache archive."""

    def __init__(self, config: BuildConfig, package_manager: PackageManager,
                 builder_factory: Callable[[Path], KernelBuilder]):
        """
        Initialize the source cache.

        Args:
            config: Build configuration
            package_manager: Source retrieval collaborator for cache misses
            builder_factory: Creates a KernelBuilder for a tree path
        """
        self.config = config
        self.package_manager = package_manager
        self.builder_factory = builder_factory
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the cache for this release exclusively for the duration of a run."""
        ensure_directory(self.config.cache_dir)
        with open(self.config.lock_file, 'w') as lock_file:
            try:
                fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as e:
                raise CacheLockedError(
                    f"Another kpatch build is using {self.config.cache_dir}"
                ) from e
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def is_cached(self) -> bool:
        return self.config.cache_archive.exists()

    def remove_tree(self):
        """Remove the unpacked tree; the archive is kept."""
        if remove_path(self.config.source_dir):
            self.logger.debug(f"Removed source tree {self.config.source_dir}")

    def acquire(self) -> SourceTree:
        """
        Return a fully built baseline tree for the configured release.

        Restores the cache archive when there is one, otherwise prepares
        the tree from distribution packages, builds it and archives it.
        """
        self.remove_tree()
        tree = SourceTree(path=self.config.source_dir, archive_path=self.config.cache_archive)

        if self.is_cached():
            self.logger.info(f"Using cache at {self.config.cache_dir}")
            self.extract_archive(tree)
        else:
            self.build_baseline(tree)
            self.create_archive(tree)

        if not tree.built:
            raise PipelineError(f"Baseline tree has no vmlinux: {tree.path}")
        return tree

    def build_baseline(self, tree: SourceTree):
        """Prepare and build a pristine tree for the running release."""
        version = self.config.version
        download_dir = self.config.work_dir / "source"

        # rpmbuild -bp checks the kernel.spec BuildRequires
        self.package_manager.install_build_dependencies(version)

        prepared = self.package_manager.prepare_source(version, download_dir)
        ensure_directory(tree.path.parent)
        shutil.move(str(prepared), str(tree.path))
        remove_path(download_dir)

        dot_config = tree.path / ".config"
        if not dot_config.exists():
            if not self.config.kernel_config_path.exists():
                raise PipelineError(f"Kernel config not found: {self.config.kernel_config_path}")
            shutil.copy2(self.config.kernel_config_path, dot_config)

        # Must match the running kernel exactly or the module won't load
        (tree.path / "localversion").write_text(version.localversion + "\n")

        self.logger.info("Building original kernel")
        self.builder_factory(tree.path).build_vmlinux()

    def create_archive(self, tree: SourceTree):
        self.logger.info(f"Caching kernel tree in {tree.archive_path}")
        partial = tree.archive_path.with_name(tree.archive_path.name + ".partial")
        with tarfile.open(partial, "w:gz") as tar:
            tar.add(str(tree.path), arcname=ARCHIVE_ROOT)
        partial.replace(tree.archive_path)

    def extract_archive(self, tree: SourceTree):
        try:
            with tarfile.open(tree.archive_path, "r:gz") as tar:
                if hasattr(tarfile, "fully_trusted_filter"):
                    tar.extractall(str(tree.path.parent), filter="fully_trusted")
                else:
                    tar.extractall(str(tree.path.parent))
        except (tarfile.TarError, EOFError, zlib.error) as e:
            raise PipelineError(f"Cannot extract cache archive {tree.archive_path}: {e}") from e
