# devstack_common/file_utils.py
# -*- coding: utf-8 -*-
"""
Files produced by a bootstrap run: the per-run backup directory and the
credentials file that steps append their secrets to.
"""

import datetime
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Union

from .api_client import is_simulated

module_logger = logging.getLogger(__name__)

RUN_DIRECTORY_PREFIX = "config-backup-"
CREDENTIALS_FILE_NAME = "tokens.conf"
SUMMARY_FILE_NAME = "configuration-summary.md"
LOG_FILE_NAME = "configuration.log"


def create_run_directory(
    output_dir: Union[str, Path],
    now: Optional[datetime.datetime] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Create a fresh, timestamped directory for this run's artifacts.

    A run never reuses a directory: if the timestamped name is taken, a
    numeric suffix is appended.

    Args:
        output_dir: Parent directory, created if missing.
        now: Timestamp to use (defaults to the current local time).
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        Path of the created directory.
    """
    logger_to_use = current_logger if current_logger else module_logger
    timestamp = (now or datetime.datetime.now()).strftime("%Y%m%d_%H%M%S")
    parent = Path(output_dir)
    parent.mkdir(parents=True, exist_ok=True)

    candidate = parent / f"{RUN_DIRECTORY_PREFIX}{timestamp}"
    suffix = 1
    while True:
        try:
            candidate.mkdir()
            break
        except FileExistsError:
            candidate = parent / f"{RUN_DIRECTORY_PREFIX}{timestamp}-{suffix}"
            suffix += 1

    logger_to_use.info(f"Configuration will be saved to: {candidate}")
    return candidate


class CredentialsFile:
    """
    ``KEY=value`` lines written as steps produce secrets.

    The file is created exclusively at the start of a run and only ever
    appended to afterwards. Appends are serialised because service chains
    may run on several threads.
    """

    def __init__(
        self,
        path: Union[str, Path],
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = Path(path)
        self.dry_run = dry_run
        self.logger = logger or module_logger
        self.keys: List[str] = []
        self._lock = threading.Lock()

    def create(self) -> "CredentialsFile":
        """
        Create the file with its header.

        Raises:
            FileExistsError: If a credentials file already exists at the path.
        """
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(
                f"# DevOps stack credentials generated {datetime.datetime.now().isoformat(timespec='seconds')}\n"
            )
            if self.dry_run:
                f.write(
                    "# DRY RUN: no value below was applied to any service\n"
                )
        self.logger.debug(f"Created credentials file {self.path}")
        return self

    def append(self, key: str, value: object) -> None:
        """Append one ``KEY=value`` line."""
        line_key = key.upper()
        rendered = str(value)
        if "\n" in rendered:
            raise ValueError(f"Credential '{line_key}' contains a newline")
        comment = "  # simulated" if is_simulated(value) else ""
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(f"{line_key}={rendered}{comment}\n")
            self.keys.append(line_key)
        self.logger.debug(f"Saved {line_key} to {self.path.name}")
