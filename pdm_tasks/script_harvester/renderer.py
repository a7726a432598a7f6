"""Rendering utilities for the scan summary."""
from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, cast

from . import manifest
from .normalize import now_iso

SECTION_LABELS = (
    ("pdm_scripts", "PDM scripts"),
    ("project_scripts", "Project scripts"),
    ("poetry_scripts", "Poetry scripts"),
)
NO_SCRIPTS = "_No scripts found._"


def read_models(path: Path) -> Iterator[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            if line.strip():
                yield cast(dict[str, Any], json.loads(line))


def render_summary(extracted_path: Path, manifest_path: Path, output_path: Path) -> str:
    models = list(read_models(extracted_path)) if extracted_path.exists() else []
    manifest_data = manifest.load_manifest(manifest_path)
    kind_counts: Counter[str] = Counter()
    for model in models:
        kind_counts.update(manifest.count_by_kind(model))
    lines = ["# Workspace Scripts", "", f"_Last build: {now_iso()}_", ""]
    lines.append(f"**Manifests:** {len(models)}")
    lines.append("")
    lines.append(f"**Total scripts:** {sum(kind_counts.values())}")
    lines.append("")
    if kind_counts:
        kind_summary = ", ".join(
            f"{kind} ({count})" for kind, count in sorted(kind_counts.items())
        )
        lines.append(f"**By kind:** {kind_summary}")
        lines.append("")
    for model in sorted(models, key=lambda data: str(data.get("uri", ""))):
        lines.extend(render_document(model))
    lines.append("## Files")
    lines.append("")
    entries = sorted(
        manifest.manifest_entries(manifest_data), key=lambda entry: str(entry.get("file", ""))
    )
    if not entries:
        lines.append("_No files recorded yet._")
    else:
        lines.append("| File | Status | Scripts | Build backend |")
        lines.append("| --- | --- | --- | --- |")
        for entry in entries:
            lines.append(
                f"| {escape_cell(str(entry.get('file', '')))} | {entry.get('status', '')} | "
                f"{entry.get('script_count', 0)} | {escape_cell(str(entry.get('build_backend') or ''))} |"
            )
    lines.append("")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    content = "\n".join(lines)
    output_path.write_text(content, encoding="utf-8")
    return content


def render_document(model: Mapping[str, Any]) -> list[str]:
    lines = [f"## {model.get('uri', '')}", ""]
    build_system = model.get("build_system")
    if build_system:
        requires = ", ".join(str(item) for item in build_system.get("requires") or [])
        lines.append(
            f"**Build backend:** {build_system.get('build_backend') or 'unknown'}"
            + (f" (requires {requires})" if requires else "")
        )
        lines.append("")
    plugins = model.get("plugins")
    if plugins and plugins.get("plugins"):
        lines.append("**PDM plugins:** " + ", ".join(str(item) for item in plugins["plugins"]))
        lines.append("")
    rendered_any = False
    for field_name, label in SECTION_LABELS:
        collection = model.get(field_name)
        scripts = cast(Iterable[Mapping[str, Any]], (collection or {}).get("scripts") or [])
        rows = [format_script_row(script) for script in scripts]
        if not rows:
            continue
        rendered_any = True
        lines.append(f"### {label}")
        lines.append("")
        lines.append("| Name | Command | Type | Help | Line |")
        lines.append("| --- | --- | --- | --- | --- |")
        lines.extend(rows)
        lines.append("")
    if not rendered_any:
        lines.append(NO_SCRIPTS)
        lines.append("")
    return lines


def format_script_row(script: Mapping[str, Any]) -> str:
    name_range = script.get("name_range") or {}
    line = int((name_range.get("start") or {}).get("line", 0)) + 1
    exec_type = script.get("exec_type") or script.get("sub_kind") or ""
    return (
        f"| {escape_cell(str(script.get('name', '')))} "
        f"| `{escape_cell(str(script.get('value', '')))}` "
        f"| {escape_cell(str(exec_type))} "
        f"| {escape_cell(str(script.get('help') or ''))} "
        f"| {line} |"
    )


def escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")
