"""Configuration parsing modules for mirari."""

from .conf_parser import ParsedProject, parse_project, split_list

__all__ = [
    "ParsedProject",
    "parse_project",
    "split_list",
]
