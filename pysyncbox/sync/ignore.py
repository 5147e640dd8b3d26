"""Filter for transient and system files that must never be synchronized."""

import logging
import os
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

TEMP_FILE_PREFIX = "~$"
"""Prefix of owner/lock files written by office suites during editing"""

HIDDEN_FILE_PREFIX = "."

IGNORED_EXTENSIONS = frozenset({"tmp", "temp", "part", "crdownload"})
"""Extensions of partial downloads and scratch files (compared lowercase)"""


def should_ignore(path: Union[str, "os.PathLike[str]"]) -> bool:
    """Check whether a path is a transient or system artifact.

    Args:
        path: Path of a file inside the synchronized directory

    Returns:
        True for paths without a file name, directories, office lock files
        (``~$name``), hidden files and temporary extensions. Any error while
        inspecting the path also yields True.

    Examples:
        >>> should_ignore("/sync/~$report.docx")
        True
        >>> should_ignore("/sync/movie.crdownload")
        True
        >>> should_ignore("/sync/report.docx")
        False
    """
    try:
        p = Path(path)
        name = p.name
        if not name.strip():
            return True
        if p.is_dir():
            return True
        if name.startswith(TEMP_FILE_PREFIX) or name.startswith(HIDDEN_FILE_PREFIX):
            return True
        extension = p.suffix[1:].lower()
        return extension in IGNORED_EXTENSIONS
    except (OSError, ValueError, TypeError) as e:
        logger.debug(f"Ignoring {path!r}, could not inspect it: {e}")
        return True
