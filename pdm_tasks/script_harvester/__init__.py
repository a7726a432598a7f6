"""Script harvester package."""
from __future__ import annotations

from pathlib import Path

from . import cache, extract, lookup, manifest, normalize, parser, renderer, tasks, tomlindex
from .model import DocumentScriptModel
from .parser import DocumentParseError, parse_document

__all__ = [
    "cache",
    "extract",
    "lookup",
    "manifest",
    "normalize",
    "parser",
    "renderer",
    "tasks",
    "tomlindex",
    "DocumentParseError",
    "DocumentScriptModel",
    "parse_document",
    "read_pyproject",
]


def read_pyproject(path: Path) -> DocumentScriptModel:
    """Convenience wrapper to parse the ``pyproject.toml`` at ``path``."""

    return parser.read_document(path, path.parent)
