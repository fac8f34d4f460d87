#!/usr/bin/env python3
"""
Build configuration for the kpatch build pipeline.

The configuration is created once at start-up and passed explicitly to
every pipeline component.
"""

import os
import json
import logging
import platform
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_CACHE_ROOT = "~/.kpatch"
DEFAULT_TOOLS_DIR = "/usr/local/libexec/kpatch"
DEFAULT_DATA_DIR = "/usr/local/share/kpatch"
DEFAULT_SECTION_FLAGS = "-ffunction-sections -fdata-sections"
LOG_FILE_NAME = "kpatch-build.log"


@dataclass(frozen=True)
class KernelVersion:
    """Release string of the kernel the patch module is built for"""
    release: str

    @classmethod
    def running(cls) -> "KernelVersion":
        return cls(platform.release())

    @property
    def localversion(self) -> str:
        """Suffix after the base version, e.g. '-123.el7.x86_64'"""
        if '-' not in self.release:
            return ""
        return '-' + self.release.split('-', 1)[1]

    def __str__(self) -> str:
        return self.release


@dataclass
class BuildConfig:
    """Configuration for one kpatch build run"""
    version: KernelVersion
    base_dir: Path = field(default_factory=Path.cwd)
    cache_root: Path = Path(DEFAULT_CACHE_ROOT)
    tools_dir: Path = Path(DEFAULT_TOOLS_DIR)
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    kernel_config_path: Optional[Path] = None  # None = /boot/config-<release>
    parallel_jobs: int = 0  # 0 = auto-detect
    section_flags: str = DEFAULT_SECTION_FLAGS
    strict_patch_apply: bool = False
    verbose: bool = False

    def __post_init__(self):
        self.base_dir = Path(self.base_dir)
        self.cache_root = Path(self.cache_root).expanduser()
        self.tools_dir = Path(self.tools_dir)
        self.data_dir = Path(self.data_dir)
        if self.kernel_config_path is None:
            self.kernel_config_path = Path("/boot") / f"config-{self.version.release}"
        else:
            self.kernel_config_path = Path(self.kernel_config_path)

    @property
    def jobs(self) -> int:
        """Parallel build jobs, one per logical processor unless overridden"""
        if self.parallel_jobs > 0:
            return self.parallel_jobs
        return os.cpu_count() or 1

    @property
    def cache_dir(self) -> Path:
        return self.cache_root / self.version.release

    @property
    def source_dir(self) -> Path:
        return self.cache_dir / "src"

    @property
    def cache_archive(self) -> Path:
        return self.cache_dir / f"{self.version.release}.tar.gz"

    @property
    def lock_file(self) -> Path:
        return self.cache_dir / ".lock"

    @property
    def work_dir(self) -> Path:
        return self.cache_dir / "work"

    @property
    def log_file(self) -> Path:
        return self.base_dir / LOG_FILE_NAME


def load_build_config(config_file: str, version: Optional[KernelVersion] = None,
                      base_dir: Optional[Path] = None) -> BuildConfig:
    """Load build configuration from a JSON file"""
    try:
        with open(config_file, 'r') as f:
            config_data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error loading build config: {e}")
        raise

    if not isinstance(config_data, dict):
        raise ValueError(f"Build config {config_file} must contain a JSON object")

    if version is None:
        release = config_data.get("kernel_release")
        version = KernelVersion(release) if release else KernelVersion.running()

    return BuildConfig(
        version=version,
        base_dir=base_dir or Path.cwd(),
        cache_root=config_data.get("cache_root", DEFAULT_CACHE_ROOT),
        tools_dir=config_data.get("tools_dir", DEFAULT_TOOLS_DIR),
        data_dir=config_data.get("data_dir", DEFAULT_DATA_DIR),
        kernel_config_path=config_data.get("kernel_config_path"),
        parallel_jobs=config_data.get("parallel_jobs", 0),
        section_flags=config_data.get("section_flags", DEFAULT_SECTION_FLAGS),
        strict_patch_apply=config_data.get("strict_patch_apply", False),
        verbose=config_data.get("verbose", False)
    )


def save_build_config(config: BuildConfig, config_file: str):
    """Save build configuration to a JSON file"""
    config_data = {
        "kernel_release": config.version.release,
        "cache_root": str(config.cache_root),
        "tools_dir": str(config.tools_dir),
        "data_dir": str(config.data_dir),
        "kernel_config_path": str(config.kernel_config_path),
        "parallel_jobs": config.parallel_jobs,
        "section_flags": config.section_flags,
        "strict_patch_apply": config.strict_patch_apply,
        "verbose": config.verbose
    }

    with open(config_file, 'w') as f:
        json.dump(config_data, f, indent=2)
