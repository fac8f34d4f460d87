#!/usr/bin/env python3
"""
External command execution for the kpatch build pipeline.

Every command's combined stdout/stderr is streamed line by line into the
run log, and optionally into a capture file for later scanning.
"""

import os
import subprocess
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union
from dataclasses import dataclass, field

from kpatch_build.errors import CommandFailedError


@dataclass
class CommandResult:
    """Result of an external command."""
    command: List[str]
    returncode: int
    output: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs external commands and logs their output."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("kpatch_build.commands")

    def run(self, command: List[str], cwd: Union[str, Path, None] = None,
            env: Optional[Dict[str, str]] = None,
            capture_file: Union[str, Path, None] = None,
            check: bool = True) -> CommandResult:
        """
        Run a command to completion.

        Args:
            command: Command and arguments
            cwd: Working directory
            env: Variables added on top of the current environment
            capture_file: File that receives a copy of the output
            check: Raise CommandFailedError on a non-zero exit status

        Returns:
            CommandResult with the exit status and output lines
        """
        command = [str(arg) for arg in command]
        full_env = os.environ.copy()
        if env:
            full_env.update(env)

        self.logger.debug(f"Running command: {' '.join(command)}")
        if cwd:
            self.logger.debug(f"Working directory: {cwd}")

        capture = open(capture_file, 'w', errors='replace') if capture_file else None
        process = None
        try:
            try:
                # Compiler diagnostics echo source lines in arbitrary encodings
                process = subprocess.Popen(
                    command,
                    cwd=str(cwd) if cwd else None,
                    env=full_env,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    universal_newlines=True,
                    errors='replace',
                    bufsize=1
                )
            except OSError as e:
                self.logger.error(f"Could not start {command[0]}: {e}")
                raise CommandFailedError(command, 127, str(cwd) if cwd else None) from e

            output_lines = []
            for line in iter(process.stdout.readline, ''):
                line = line.rstrip('\n')
                output_lines.append(line)
                self.logger.debug(line)
                if capture:
                    capture.write(line + '\n')

            returncode = process.wait()
        finally:
            if process is not None:
                if process.poll() is None:
                    process.kill()
                    process.wait()
                process.stdout.close()
            if capture:
                capture.close()

        result = CommandResult(command=command, returncode=returncode, output=output_lines)
        if returncode != 0:
            self.logger.debug(f"Command exited with status {returncode}: {' '.join(command)}")
            if check:
                raise CommandFailedError(command, returncode, str(cwd) if cwd else None)

        return result
