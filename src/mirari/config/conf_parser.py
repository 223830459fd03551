"""
Project configuration (.conf) parser.

This module reads the INI-style configuration file describing a mirari
application: its name, OCaml entry point, libraries and the opam packages
it needs, optionally refined per target mode.

Example www.conf:
    [main]
    name = www
    main = Dispatch.main
    depends = cohttp, uri
    packages = mirage-http

    [xen]
    packages = mirage-block-xen
    memory = 64
"""

import configparser
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from ..errors import ConfigParseError
from ..mode import TargetMode

MAIN_SECTION = "main"
DEFAULT_ENTRY_POINT = "Main.main"
DEFAULT_XEN_MEMORY = 32

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
_ENTRY_RE = re.compile(r"^[A-Z][A-Za-z0-9_']*(\.[A-Za-z_][A-Za-z0-9_']*)+$")


@dataclass
class ParsedProject:
    """Contents of a parsed configuration file."""

    path: Path
    name: str
    entry_point: str = DEFAULT_ENTRY_POINT
    depends: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    mode_packages: Dict[TargetMode, List[str]] = field(default_factory=dict)
    xen_memory: int = DEFAULT_XEN_MEMORY

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def entry_module(self) -> str:
        """Module part of the entry point (e.g. 'Dispatch' for 'Dispatch.main')."""
        return self.entry_point.rsplit(".", 1)[0]

    def packages_for(self, mode: TargetMode) -> List[str]:
        return list(self.mode_packages.get(mode, []))


def split_list(value: str) -> List[str]:
    """Split a comma and/or newline separated value into its items.

    Example:
        For "cohttp, uri\\n  lwt" returns ['cohttp', 'uri', 'lwt']
    """
    items = []
    for line in value.split("\n"):
        for item in line.split(","):
            item = item.strip()
            if item:
                items.append(item)
    return items


def parse_project(path: Path) -> ParsedProject:
    """Parse a configuration file.

    Args:
        path: Path to the .conf file

    Returns:
        ParsedProject with the file's settings

    Raises:
        ConfigParseError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigParseError(f"Configuration file not found: {path}")

    parser = configparser.ConfigParser(
        allow_no_value=True,
        inline_comment_prefixes=(";", "#"),
        interpolation=None,
    )
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, UnicodeDecodeError, configparser.Error) as e:
        raise ConfigParseError(f"Failed to parse {path}: {e}") from e

    if MAIN_SECTION not in parser:
        raise ConfigParseError(f"{path.name}: missing [{MAIN_SECTION}] section")
    main = parser[MAIN_SECTION]

    name = (main.get("name") or "").strip()
    if not name:
        raise ConfigParseError(f"{path.name}: [{MAIN_SECTION}] is missing required field: name")
    if not _NAME_RE.match(name):
        raise ConfigParseError(f"{path.name}: invalid application name '{name}'")

    entry_point = (main.get("main") or DEFAULT_ENTRY_POINT).strip()
    if not _ENTRY_RE.match(entry_point):
        raise ConfigParseError(
            f"{path.name}: invalid entry point '{entry_point}' (expected Module.function)"
        )

    mode_packages: Dict[TargetMode, List[str]] = {}
    xen_memory = DEFAULT_XEN_MEMORY
    for mode in TargetMode:
        if mode.value not in parser:
            continue
        section = parser[mode.value]
        mode_packages[mode] = split_list(section.get("packages") or "")
        if mode is TargetMode.HYPERVISOR_GUEST and section.get("memory"):
            try:
                xen_memory = int(section["memory"])
            except ValueError as e:
                raise ConfigParseError(
                    f"{path.name}: [xen] memory must be an integer, got '{section['memory']}'"
                ) from e
            if xen_memory <= 0:
                raise ConfigParseError(f"{path.name}: [xen] memory must be positive")

    return ParsedProject(
        path=path.absolute(),
        name=name,
        entry_point=entry_point,
        depends=split_list(main.get("depends") or ""),
        packages=split_list(main.get("packages") or ""),
        mode_packages=mode_packages,
        xen_memory=xen_memory,
    )
