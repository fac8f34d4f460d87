#!/usr/bin/env python3
"""
kpatch-build command-line interface.

Builds kpatch.ko and kpatch-<name>.ko for a patch against the running
kernel and leaves them in the current directory.

Exit status: 0 success (including no changed objects), 1 build failure,
2 usage error, 3 patch file not found.
"""

import argparse
import sys
from pathlib import Path

from kpatch_build.config.build_config import BuildConfig, KernelVersion, load_build_config
from kpatch_build.patch.patch_set import PatchSet
from kpatch_build.pipeline.orchestrator import LivePatchOrchestrator

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_PATCH_NOT_FOUND = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kpatch-build",
        description="Build a live patch module for the running kernel"
    )
    parser.add_argument("patchfile", help="Unified diff against the running kernel's source")
    parser.add_argument("--config", help="Build configuration file (JSON)")
    parser.add_argument("--jobs", type=int, default=0, help="Number of parallel jobs")
    parser.add_argument("--verbose", action="store_true", help="Show command output")
    return parser


def main(argv=None) -> int:
    """Main function for command-line usage"""
    parser = build_parser()
    # argparse exits with status 2 on bad usage
    args = parser.parse_args(argv)

    patch_path = Path(args.patchfile).expanduser()
    if not patch_path.is_file():
        print(f"ERROR: patch file {patch_path} not found", file=sys.stderr)
        return EXIT_PATCH_NOT_FOUND

    base_dir = Path.cwd()
    try:
        if args.config:
            config = load_build_config(args.config, base_dir=base_dir)
        else:
            config = BuildConfig(version=KernelVersion.running(), base_dir=base_dir)
    except (OSError, ValueError) as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if args.jobs > 0:
        config.parallel_jobs = args.jobs
    if args.verbose:
        config.verbose = True

    result = LivePatchOrchestrator(config).run(PatchSet.from_path(patch_path))
    return EXIT_SUCCESS if result.success else EXIT_FAILURE


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
