"""Parse pyproject manifests into script models and scan directories for them."""
from __future__ import annotations

import fnmatch
import logging
import os
import tomllib
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path

from .extract import (
    extract_build_system,
    extract_pdm_plugins,
    extract_pdm_scripts,
    extract_poetry_scripts,
    extract_project_scripts,
)
from .model import DocumentScriptModel
from .tomlindex import parse_syntax_tree

logger = logging.getLogger(__name__)

MANIFEST_NAME = "pyproject.toml"

EXCLUDED_DIRS = {".venv", "venv", "node_modules", ".git", ".vscode-test"}


class DocumentParseError(ValueError):
    """Raised when a manifest is not valid TOML."""

    def __init__(
        self,
        uri: str,
        message: str,
        *,
        lineno: int | None = None,
        colno: int | None = None,
    ) -> None:
        super().__init__(f"{uri}: {message}")
        self.uri = uri
        self.lineno = lineno
        self.colno = colno


@dataclass
class FileScanResult:
    """Metadata captured while scanning a single manifest."""

    file: str
    sha256: str
    mtime: int
    script_count: int
    status: str = "ok"
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "sha256": self.sha256,
            "mtime": self.mtime,
            "script_count": self.script_count,
            "status": self.status,
            "error": self.error,
        }


def parse_document(text: str, uri: str) -> DocumentScriptModel:
    """Extract every supported script schema from one manifest.

    The text is decoded once; a syntax error aborts the whole document with
    ``DocumentParseError``. Each schema is read independently afterwards, so a
    missing or odd section never hides the others.
    """

    try:
        values = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise DocumentParseError(
            uri,
            str(exc),
            lineno=getattr(exc, "lineno", None),
            colno=getattr(exc, "colno", None),
        ) from exc
    tree = parse_syntax_tree(text)
    model = DocumentScriptModel(
        uri=uri,
        pdm_scripts=extract_pdm_scripts(tree, values),
        project_scripts=extract_project_scripts(tree, values),
        poetry_scripts=extract_poetry_scripts(tree, values),
        plugins=extract_pdm_plugins(tree, values),
        build_system=extract_build_system(tree, values),
    )
    logger.debug("Found %d scripts in %s", model.script_count, uri)
    return model


def relative_uri(path: Path, base_path: Path) -> str:
    try:
        return path.relative_to(base_path).as_posix()
    except ValueError:
        return path.as_posix()


def read_document(path: Path, base_path: Path) -> DocumentScriptModel:
    uri = relative_uri(path, base_path)
    try:
        text = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DocumentParseError(uri, str(exc)) from exc
    return parse_document(text, uri)


def resolve_exclude_patterns(value: Iterable[str] | str | None = None) -> list[str]:
    if value is None:
        value = os.environ.get("PDM_TASKS_EXCLUDE", "")
    if isinstance(value, str):
        value = value.split(",")
    return [pattern.strip() for pattern in value if pattern and pattern.strip()]


def is_excluded(directory: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(directory, pattern) for pattern in patterns)


def iter_manifest_files(root: Path, exclude: Iterable[str] = ()) -> Iterator[Path]:
    patterns = list(exclude)
    for path in sorted(root.rglob(MANIFEST_NAME)):
        if not path.is_file():
            continue
        relative = path.relative_to(root)
        if any(part in EXCLUDED_DIRS for part in relative.parts[:-1]):
            continue
        directory = relative.parent.as_posix()
        if patterns and is_excluded(directory, patterns):
            logger.debug("Excluded %s", relative)
            continue
        yield path


def scan_directory(
    target_dir: Path,
    base_path: Path,
    *,
    exclude: Iterable[str] | None = None,
) -> tuple[dict[str, DocumentScriptModel], dict[str, FileScanResult]]:
    models: dict[str, DocumentScriptModel] = {}
    files: dict[str, FileScanResult] = {}
    patterns = resolve_exclude_patterns(exclude)
    for file_path in iter_manifest_files(target_dir, patterns):
        rel_file = relative_uri(file_path, base_path)
        try:
            raw_bytes = file_path.read_bytes()
            mtime = int(file_path.stat().st_mtime)
        except OSError as exc:
            logger.error("Failed to read %s: %s", file_path, exc)
            files[rel_file] = FileScanResult(
                file=rel_file,
                sha256="",
                mtime=0,
                script_count=0,
                status="error",
                error=str(exc),
            )
            continue
        file_sha = sha256(raw_bytes).hexdigest()
        try:
            model = parse_document(raw_bytes.decode("utf-8"), rel_file)
        except (DocumentParseError, UnicodeDecodeError) as exc:
            logger.warning("Failed to parse %s: %s", rel_file, exc)
            files[rel_file] = FileScanResult(
                file=rel_file,
                sha256=file_sha,
                mtime=mtime,
                script_count=0,
                status="error",
                error=str(exc),
            )
            continue
        models[rel_file] = model
        files[rel_file] = FileScanResult(
            file=rel_file,
            sha256=file_sha,
            mtime=mtime,
            script_count=model.script_count,
        )
    return models, files
