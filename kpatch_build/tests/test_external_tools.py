#!/usr/bin/env python3
"""
Tests for the external tool adapters, the package manager and the
kernel make wrapper.
"""

import sys
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from kpatch_build.build.kernel_builder import KernelBuilder
from kpatch_build.config.build_config import KernelVersion
from kpatch_build.errors import MissingArtifactError
from kpatch_build.tools.command_runner import CommandResult
from kpatch_build.tools.external_tools import (
    Binutils,
    PatchSectionAnnotator,
    SymbolLinker,
    verify_tools
)
from kpatch_build.tools.package_manager import YumPackageManager


class TestBinutils(unittest.TestCase):
    """Test cases for Binutils"""

    def setUp(self):
        self.runner = MagicMock()
        self.binutils = Binutils(self.runner)

    def test_strip_debug(self):
        self.binutils.strip_debug(Path("/tmp/fork.o"))
        self.runner.run.assert_called_once_with(["strip", "-d", "/tmp/fork.o"])

    def test_link_relocatable(self):
        self.binutils.link_relocatable("out.o", [Path("a.o"), Path("b.o")])
        self.runner.run.assert_called_once_with(["ld", "-r", "-o", "out.o", "a.o", "b.o"])


class TestKpatchTools(unittest.TestCase):
    """Test cases for the kpatch tool adapters"""

    def setUp(self):
        self.runner = MagicMock()

    def test_annotate(self):
        annotator = PatchSectionAnnotator(self.runner, "/usr/libexec/kpatch")
        annotator.annotate("output.o", "/src/vmlinux")
        self.runner.run.assert_called_once_with(
            ["/usr/libexec/kpatch/add-patch-section", "output.o", "/src/vmlinux"])

    def test_link(self):
        linker = SymbolLinker(self.runner, "/usr/libexec/kpatch")
        linker.link("kpatch-foo.ko", "/src/vmlinux")
        self.runner.run.assert_called_once_with(
            ["/usr/libexec/kpatch/link-vmlinux-syms", "kpatch-foo.ko", "/src/vmlinux"])

    @patch('shutil.which', side_effect=lambda name: None if name == "missing-tool" else "/usr/bin/" + name)
    def test_verify_tools(self, mock_which):
        self.assertEqual(verify_tools(["make", "missing-tool", "ld"]), ["missing-tool"])


class TestKernelBuilder(unittest.TestCase):
    """Test cases for KernelBuilder"""

    def setUp(self):
        self.runner = MagicMock()
        self.builder = KernelBuilder("/src", self.runner, jobs=8)

    def test_build_vmlinux(self):
        """Test the parallel vmlinux build"""
        self.builder.build_vmlinux(capture_file="/work/patched_build.log")

        self.runner.run.assert_called_once_with(
            ["make", "-j8", "vmlinux"], cwd=Path("/src"), env=None,
            capture_file="/work/patched_build.log")

    def test_build_object(self):
        """Test a single object rebuild with extra compiler flags"""
        path = self.builder.build_object("kernel/fork.o", cflags="-ffunction-sections")

        self.assertEqual(path, Path("/src/kernel/fork.o"))
        self.runner.run.assert_called_once_with(
            ["make", "kernel/fork.o"], cwd=Path("/src"),
            env={"KCFLAGS": "-ffunction-sections"}, capture_file=None)

    def test_build_module(self):
        """Test building an external module directory"""
        self.builder.build_module("/work/core", env={"KPATCH_BUILD": "/src"})

        self.runner.run.assert_called_once_with(
            ["make", "-j8"], cwd="/work/core", env={"KPATCH_BUILD": "/src"}, capture_file=None)

    def test_minimum_jobs(self):
        self.assertEqual(KernelBuilder("/src", self.runner, jobs=0).jobs, 1)


class TestYumPackageManager(unittest.TestCase):
    """Test cases for YumPackageManager"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.version = KernelVersion("3.10.0-123.el7.x86_64")
        self.runner = MagicMock()
        self.runner.run.side_effect = self._run
        self.installed = {"rpmdevtools", "yum-utils"}
        self.manager = YumPackageManager(self.runner)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def _run(self, command, check=True, **kwargs):
        if command[:3] == ["rpm", "-q", "--quiet"]:
            return CommandResult(command=command, returncode=0 if command[3] in self.installed else 1)
        if command[0] == "yumdownloader":
            (Path(command[3]) / "kernel-3.10.0-123.el7.src.rpm").write_bytes(b"rpm")
        if command[0] == "rpmbuild":
            tree = self.temp_dir / "BUILD" / "kernel-3.10.0-123.el7" / "linux-3.10.0-123.el7.x86_64"
            tree.mkdir(parents=True)
        return CommandResult(command=command, returncode=0)

    def _commands(self):
        return [call.args[0] for call in self.runner.run.call_args_list]

    def test_prepare_source(self):
        """Test download, unpack and prep of the source package"""
        tree = self.manager.prepare_source(self.version, self.temp_dir)

        self.assertEqual(tree.name, "linux-3.10.0-123.el7.x86_64")
        commands = self._commands()
        self.assertIn(["yumdownloader", "--source", "--destdir", str(self.temp_dir),
                       "kernel-3.10.0-123.el7.x86_64"], commands)
        self.assertIn(["rpmbuild", "--define", f"_topdir {self.temp_dir}", "-bp",
                       str(self.temp_dir / "SPECS" / "kernel.spec")], commands)

    def test_missing_packages_installed(self):
        """Test that missing rpm tooling is installed first"""
        self.installed = {"rpmdevtools"}

        self.manager.install_build_dependencies(self.version)

        commands = self._commands()
        self.assertIn(["sudo", "yum", "install", "-y", "yum-utils"], commands)
        self.assertNotIn(["sudo", "yum", "install", "-y", "rpmdevtools"], commands)
        self.assertEqual(commands[-1], ["sudo", "yum-builddep", "-y", "kernel-3.10.0-123.el7.x86_64"])

    def test_no_source_package(self):
        """Test that a download producing nothing is fatal"""
        self.runner.run.side_effect = lambda command, check=True, **kwargs: CommandResult(
            command=command, returncode=0)

        with self.assertRaises(MissingArtifactError):
            self.manager.prepare_source(self.version, self.temp_dir)


if __name__ == "__main__":
    unittest.main(verbosity=2)
