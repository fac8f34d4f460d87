#!/usr/bin/env python3
"""
Run logging for the kpatch build pipeline.

Progress messages go to the console; everything, including the output of
each external command, goes to a single run log file.
"""

import logging
from pathlib import Path
from typing import List

LOGGER_NAME = "kpatch_build"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class RunLogging:
    """Handlers attached for one pipeline run."""

    def __init__(self, logger: logging.Logger, handlers: List[logging.Handler], log_file: Path):
        self.logger = logger
        self.handlers = handlers
        self.log_file = log_file

    def close(self):
        """Detach and close the run handlers so the log file can be removed."""
        for handler in self.handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self.handlers = []


def setup_run_logging(log_file: Path, verbose: bool = False) -> RunLogging:
    """
    Setup logging for one pipeline run.

    Args:
        log_file: Run log path, truncated if it exists
        verbose: Also echo command output to the console

    Returns:
        RunLogging handle to close when the run ends
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file, mode='w')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(message)s'))

    handlers = [file_handler, console_handler]
    for handler in handlers:
        logger.addHandler(handler)

    return RunLogging(logger, handlers, log_file)
