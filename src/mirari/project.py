"""Project configuration discovery.

A command operates on exactly one ``.conf`` file. It is either given on
the command line or found by scanning the working directory. Scanning
never recurses, and zero or several candidates are both errors.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from .errors import AmbiguousProjectError, ProjectNotFoundError
from .settings import CONF_EXTENSION


class DiscoveryMethod(Enum):
    """How the configuration file was obtained."""

    EXPLICIT = "explicit"
    SCANNED = "scanned"


@dataclass(frozen=True)
class ProjectConfig:
    """Resolved path to the configuration file of a project."""

    path: Path
    discovery: DiscoveryMethod

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def name(self) -> str:
        return self.path.stem


def find_candidates(search_dir: Path) -> List[Path]:
    """List configuration files directly inside a directory, sorted by name."""
    if not search_dir.is_dir():
        return []
    return sorted(
        entry
        for entry in search_dir.iterdir()
        if entry.suffix == CONF_EXTENSION and entry.is_file()
    )


def locate_project(
    explicit_path: Optional[Union[str, Path]] = None,
    search_dir: Optional[Path] = None,
) -> ProjectConfig:
    """Locate the configuration file a command should operate on.

    Args:
        explicit_path: Path given on the command line. Used verbatim; its
            existence is checked by the parser, not here.
        search_dir: Directory to scan (default: current directory)

    Returns:
        ProjectConfig with an absolute path

    Raises:
        ProjectNotFoundError: If no configuration file is found
        AmbiguousProjectError: If more than one configuration file is found
    """
    if search_dir is None:
        search_dir = Path.cwd()

    if explicit_path is not None:
        path = Path(explicit_path)
        if not path.is_absolute():
            path = search_dir / path
        logging.debug(f"Using configuration file given on the command line: {path}")
        return ProjectConfig(path=path.absolute(), discovery=DiscoveryMethod.EXPLICIT)

    candidates = find_candidates(search_dir)
    if not candidates:
        raise ProjectNotFoundError(
            f"No configuration file (*{CONF_EXTENSION}) found in {search_dir}. "
            + "Specify one on the command line."
        )
    if len(candidates) > 1:
        names = [candidate.name for candidate in candidates]
        raise AmbiguousProjectError(
            f"Multiple configuration files found in {search_dir}: {', '.join(names)}. "
            + "Specify one on the command line.",
            candidates=names,
        )

    logging.debug(f"Found configuration file: {candidates[0]}")
    return ProjectConfig(path=candidates[0].absolute(), discovery=DiscoveryMethod.SCANNED)
