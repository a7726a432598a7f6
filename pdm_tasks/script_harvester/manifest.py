"""Bookkeeping of scanned pyproject files between runs."""
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, cast

from .model import DocumentScriptModel, ScriptKind
from .normalize import now_iso
from .parser import FileScanResult


def ensure_manifest() -> dict[str, Any]:
    timestamp = now_iso()
    return {
        "metadata": {
            "created_at": timestamp,
            "updated_at": timestamp,
            "file_count": 0,
            "script_count": 0,
        },
        "files": {},
    }


def load_manifest(path: Path) -> dict[str, Any]:
    if not path.exists():
        return ensure_manifest()
    with path.open("r", encoding="utf-8") as fh:
        return cast(dict[str, Any], json.load(fh))


def save_manifest(path: Path, manifest: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(manifest, fh, indent=2, sort_keys=True)


def count_by_kind(model: Mapping[str, Any] | DocumentScriptModel | None) -> dict[str, int]:
    """Script counts per kind, from a model or its serialized form."""

    if model is None:
        return {}
    if isinstance(model, DocumentScriptModel):
        return {kind.value: len(collection) for kind, collection in model.collections()}
    counts: dict[str, int] = {}
    for kind in ScriptKind:
        collection = model.get(f"{kind.value}s")
        if collection is None:
            continue
        counts[kind.value] = len(collection.get("scripts") or [])
    return counts


def build_backend_of(model: Mapping[str, Any] | DocumentScriptModel | None) -> str | None:
    if model is None:
        return None
    if isinstance(model, DocumentScriptModel):
        return model.build_system.build_backend if model.build_system else None
    build_system = model.get("build_system") or {}
    backend = build_system.get("build_backend")
    return str(backend) if backend else None


def update_manifest(
    manifest: dict[str, Any],
    scan_results: Mapping[str, FileScanResult],
    run_timestamp: str,
    models: Mapping[str, Mapping[str, Any] | DocumentScriptModel] | None = None,
) -> dict[str, Any]:
    files = cast(dict[str, dict[str, Any]], manifest.setdefault("files", {}))
    models = models or {}
    seen = set()
    for file_path, result in scan_results.items():
        previous = files.get(file_path)
        status = determine_status(previous, result)
        seen.add(file_path)
        if status in {"new", "modified"} or not previous:
            last_scanned = run_timestamp
        else:
            last_scanned = str(previous.get("last_scanned_at", run_timestamp))
        model = models.get(file_path)
        files[file_path] = {
            "file": file_path,
            "sha256": result.sha256,
            "mtime": result.mtime,
            "script_count": result.script_count,
            "scripts_by_kind": count_by_kind(model),
            "build_backend": build_backend_of(model),
            "last_scanned_at": last_scanned,
            "status": status,
            "error": result.error,
        }
    for file_path, data in list(files.items()):
        if file_path not in seen:
            data["status"] = "missing"
    metadata = cast(dict[str, Any], manifest.setdefault("metadata", {}))
    metadata["updated_at"] = run_timestamp
    metadata["file_count"] = len(files)
    metadata["script_count"] = sum(
        int(entry.get("script_count", 0) or 0)
        for entry in files.values()
        if entry.get("status") != "missing"
    )
    metadata["last_run"] = run_timestamp
    return manifest


def determine_status(previous: Mapping[str, Any] | None, result: FileScanResult) -> str:
    if result.status == "error":
        return "error"
    if previous is None:
        return "new"
    if previous.get("sha256") != result.sha256:
        return "modified"
    return "unchanged"


def manifest_entries(manifest: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
    files = manifest.get("files", {})
    yield from files.values()
