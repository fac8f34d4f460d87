#!/usr/bin/env python3
"""
Live patch build orchestration.

Runs the pipeline stages in order against one cached kernel tree:
acquire the baseline, detect changed objects, rebuild them patched and
original, diff each pair and assemble the modules. Any failure stops the
run and leaves the log and working directory in place for inspection.
"""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional
from dataclasses import dataclass, field

from kpatch_build.build.dual_rebuilder import ArtifactVariant, DualTreeRebuilder
from kpatch_build.build.kernel_builder import KernelBuilder
from kpatch_build.build.module_assembler import ModuleAssembler
from kpatch_build.build.object_differ import ObjectDiffer
from kpatch_build.cache.source_cache import SourceCache
from kpatch_build.config.build_config import BuildConfig
from kpatch_build.errors import MissingArtifactError, PipelineError
from kpatch_build.patch.change_detector import ChangeDetectionStrategy, ChangeSetDetector
from kpatch_build.patch.patch_engine import PatchEngine
from kpatch_build.patch.patch_set import PatchSet
from kpatch_build.tools.command_runner import CommandRunner
from kpatch_build.tools.external_tools import (
    Binutils,
    ObjectDiffTool,
    PatchSectionAnnotator,
    SymbolLinker,
    verify_tools
)
from kpatch_build.tools.package_manager import PackageManager, YumPackageManager
from kpatch_build.utils.file_utils import copy_into, ensure_directory, remove_path
from kpatch_build.utils.logging_utils import setup_run_logging

FAILURE_MESSAGE = "kpatch build failed. Check {log_file} for more details."
PATCHED_BUILD_LOG = "patched_build.log"


class PipelineStatus(Enum):
    """Outcome of a pipeline run."""
    SUCCESS = "success"
    NO_CHANGES = "no_changes"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Result of a pipeline run."""
    status: PipelineStatus
    patch_name: str
    modules: List[Path] = field(default_factory=list)
    changed_objects: List[str] = field(default_factory=list)
    log_file: Optional[Path] = None
    work_dir: Optional[Path] = None
    error_message: Optional[str] = None
    build_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is not PipelineStatus.FAILED


class LivePatchOrchestrator:
    """Sequences the kpatch build stages inside one working directory."""

    def __init__(self, config: BuildConfig, runner: Optional[CommandRunner] = None,
                 package_manager: Optional[PackageManager] = None,
                 change_strategy: Optional[ChangeDetectionStrategy] = None,
                 builder_factory: Optional[Callable[[Path], KernelBuilder]] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Build configuration for this run
            runner: Command runner shared by every external tool
            package_manager: Source retrieval collaborator for cache misses
            change_strategy: Change detection strategy (build log scanning by default)
            builder_factory: Creates a KernelBuilder for a tree path
        """
        self.config = config
        self.runner = runner or CommandRunner()
        self.package_manager = package_manager or YumPackageManager(self.runner)
        self.change_strategy = change_strategy
        self.builder_factory = builder_factory or (
            lambda path: KernelBuilder(path, self.runner, config.jobs)
        )
        self.logger = logging.getLogger(__name__)

        self.binutils = Binutils(self.runner)
        self.diff_tool = ObjectDiffTool(self.runner, config.tools_dir)
        self.annotator = PatchSectionAnnotator(self.runner, config.tools_dir)
        self.linker = SymbolLinker(self.runner, config.tools_dir)
        self.source_cache = SourceCache(config, self.package_manager, self.builder_factory)

    def required_tools(self) -> List[str]:
        return ["make", "patch"] + Binutils.REQUIRED_TOOLS + [
            str(self.diff_tool.path),
            str(self.annotator.path),
            str(self.linker.path)
        ]

    def check_environment(self):
        missing = verify_tools(self.required_tools())
        if missing:
            raise PipelineError(f"Required tools not found: {', '.join(missing)}")

    def clean_cache_state(self):
        """Remove the unpacked tree and working directory; the archive stays."""
        self.source_cache.remove_tree()
        remove_path(self.config.work_dir)

    def run(self, patch_set: PatchSet) -> PipelineResult:
        """
        Build the core and patch modules for a patch.

        Args:
            patch_set: Patch to build

        Returns:
            PipelineResult; FAILED results keep the log and work directory
        """
        start_time = datetime.now()
        run_logging = setup_run_logging(self.config.log_file, self.config.verbose)
        copied = []

        try:
            with self.source_cache.lock():
                self.clean_cache_state()
                result = self._run_stages(patch_set)
                for module in result.modules:
                    copied.append(copy_into(module, self.config.base_dir))
                result.modules = copied
                self.clean_cache_state()
        except (PipelineError, OSError) as e:
            for module in copied:
                remove_path(module)
            self.logger.debug("Pipeline failure", exc_info=True)
            self.logger.error(f"Error: {e}")
            self.logger.error(FAILURE_MESSAGE.format(log_file=self.config.log_file))
            self.logger.error(f"Working directory: {self.config.work_dir}")
            run_logging.close()
            return PipelineResult(
                status=PipelineStatus.FAILED,
                patch_name=patch_set.name,
                log_file=self.config.log_file,
                work_dir=self.config.work_dir,
                error_message=str(e),
                build_time=(datetime.now() - start_time).total_seconds()
            )

        if result.status is PipelineStatus.SUCCESS:
            self.logger.info("SUCCESS")
        run_logging.close()
        remove_path(self.config.log_file)
        result.build_time = (datetime.now() - start_time).total_seconds()
        return result

    def _run_stages(self, patch_set: PatchSet) -> PipelineResult:
        self.check_environment()

        tree = self.source_cache.acquire()
        work_dir = ensure_directory(self.config.work_dir)
        builder = self.builder_factory(tree.path)
        engine = PatchEngine(tree.path, self.runner, strict=self.config.strict_patch_apply)
        detector = ChangeSetDetector(builder, engine, self.change_strategy)

        changeset = detector.apply(tree, patch_set, work_dir / PATCHED_BUILD_LOG)
        if not changeset:
            self.logger.info("No changed objects found")
            return PipelineResult(status=PipelineStatus.NO_CHANGES, patch_name=patch_set.name)

        rebuilder = DualTreeRebuilder(builder, self.binutils, engine, work_dir,
                                      self.config.section_flags)
        rebuilder.rebuild(changeset, ArtifactVariant.PATCHED)
        detector.revert(tree, patch_set)
        rebuilder.rebuild(changeset, ArtifactVariant.ORIGINAL)

        differ = ObjectDiffer(self.diff_tool)
        deltas = differ.diff_all(
            rebuilder.staging_dir(ArtifactVariant.ORIGINAL),
            rebuilder.staging_dir(ArtifactVariant.PATCHED),
            work_dir / "output"
        )
        expected = sorted(Path(obj).name for obj in changeset)
        if sorted(delta.name for delta in deltas) != expected:
            raise MissingArtifactError(
                f"Delta objects {[delta.name for delta in deltas]} do not match changed objects {expected}"
            )

        assembler = ModuleAssembler(self.config, builder, self.binutils, self.annotator, self.linker)
        modules = assembler.assemble(deltas, tree, patch_set, work_dir)

        return PipelineResult(
            status=PipelineStatus.SUCCESS,
            patch_name=patch_set.name,
            modules=[module.path for module in modules],
            changed_objects=changeset.objects
        )
