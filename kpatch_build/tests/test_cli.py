#!/usr/bin/env python3
"""
Tests for the kpatch-build command-line interface.
"""

import sys
import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from kpatch_build.pipeline.orchestrator import PipelineResult, PipelineStatus
from kpatch_build.scripts import kpatch_build as cli


class TestCli(unittest.TestCase):
    """Test cases for the CLI exit statuses"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.patch_file = self.temp_dir / "foo.diff"
        self.patch_file.write_text("--- a/kernel/fork.c\n+++ b/kernel/fork.c\n")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_no_arguments(self):
        """Test that a missing patch argument is a usage error"""
        with patch('sys.stderr'):
            with self.assertRaises(SystemExit) as ctx:
                cli.main([])
        self.assertEqual(ctx.exception.code, cli.EXIT_USAGE)

    def test_too_many_arguments(self):
        """Test that extra positional arguments are a usage error"""
        with patch('sys.stderr'):
            with self.assertRaises(SystemExit) as ctx:
                cli.main([str(self.patch_file), "second.patch"])
        self.assertEqual(ctx.exception.code, cli.EXIT_USAGE)

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_patch_not_found(self, mock_orchestrator):
        """Test that a missing patch file exits with 3 before any work"""
        with patch('sys.stderr'):
            status = cli.main([str(self.temp_dir / "missing.patch")])

        self.assertEqual(status, cli.EXIT_PATCH_NOT_FOUND)
        mock_orchestrator.assert_not_called()

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_success(self, mock_orchestrator):
        """Test a successful build"""
        mock_orchestrator.return_value.run.return_value = PipelineResult(
            status=PipelineStatus.SUCCESS, patch_name="foo")

        status = cli.main([str(self.patch_file), "--jobs", "3"])

        self.assertEqual(status, cli.EXIT_SUCCESS)
        config = mock_orchestrator.call_args.args[0]
        self.assertEqual(config.parallel_jobs, 3)
        patch_set = mock_orchestrator.return_value.run.call_args.args[0]
        self.assertEqual(patch_set.name, "foo")

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_no_changes_is_success(self, mock_orchestrator):
        """Test that a patch without changed objects exits 0"""
        mock_orchestrator.return_value.run.return_value = PipelineResult(
            status=PipelineStatus.NO_CHANGES, patch_name="foo")

        self.assertEqual(cli.main([str(self.patch_file)]), cli.EXIT_SUCCESS)

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_failure(self, mock_orchestrator):
        """Test that a failed build exits 1"""
        mock_orchestrator.return_value.run.return_value = PipelineResult(
            status=PipelineStatus.FAILED, patch_name="foo", error_message="make failed")

        self.assertEqual(cli.main([str(self.patch_file)]), cli.EXIT_FAILURE)

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_config_file(self, mock_orchestrator):
        """Test loading settings from a configuration file"""
        mock_orchestrator.return_value.run.return_value = PipelineResult(
            status=PipelineStatus.SUCCESS, patch_name="foo")
        config_file = self.temp_dir / "kpatch.json"
        config_file.write_text(json.dumps({
            "kernel_release": "4.18.0-305.el8.x86_64",
            "tools_dir": "/opt/kpatch"
        }))

        cli.main(["--config", str(config_file), str(self.patch_file)])

        config = mock_orchestrator.call_args.args[0]
        self.assertEqual(config.version.release, "4.18.0-305.el8.x86_64")
        self.assertEqual(config.tools_dir, Path("/opt/kpatch"))

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_unreadable_config_file(self, mock_orchestrator):
        """Test that a config file that cannot be loaded is a failure, not a usage error"""
        config_file = self.temp_dir / "kpatch.json"
        config_file.write_text("{not json")

        with patch('sys.stderr'):
            status = cli.main(["--config", str(config_file), str(self.patch_file)])

        self.assertEqual(status, cli.EXIT_FAILURE)
        mock_orchestrator.assert_not_called()

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_config_file_not_an_object(self, mock_orchestrator):
        """Test that a JSON list as configuration exits 1"""
        config_file = self.temp_dir / "kpatch.json"
        config_file.write_text("[]")

        with patch('sys.stderr'):
            status = cli.main(["--config", str(config_file), str(self.patch_file)])

        self.assertEqual(status, cli.EXIT_FAILURE)
        mock_orchestrator.assert_not_called()

    @patch('kpatch_build.scripts.kpatch_build.LivePatchOrchestrator')
    def test_missing_config_file(self, mock_orchestrator):
        """Test that a missing config file exits 1"""
        with patch('sys.stderr'):
            status = cli.main(["--config", str(self.temp_dir / "absent.json"), str(self.patch_file)])

        self.assertEqual(status, cli.EXIT_FAILURE)
        mock_orchestrator.assert_not_called()


if __name__ == "__main__":
    unittest.main(verbosity=2)
