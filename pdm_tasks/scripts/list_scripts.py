#!/usr/bin/env python3
"""CLI entrypoint for the pyproject script harvester."""
from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, cast

from pdm_tasks.script_harvester import manifest, normalize, parser, renderer, tasks
from pdm_tasks.script_harvester.model import DocumentScriptModel

DEFAULT_INDEX_NAME = ".pdm-tasks"


class HarvesterPaths:
    def __init__(self, root: Path, target: Path, index_dir: Path | None = None) -> None:
        self.root = root
        self.target = target
        self.index_dir = (index_dir or root / DEFAULT_INDEX_NAME).resolve()
        self.extracted_path = self.index_dir / "scripts.jsonl"
        self.scan_report_path = self.index_dir / "scan_report.json"
        self.manifest_path = self.index_dir / "manifest.json"
        self.summary_path = self.index_dir / "SUMMARY.md"


logger = logging.getLogger("pdm_tasks.script_harvester.cli")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def resolve_root(path: str | None) -> Path:
    if path:
        return Path(path).expanduser().resolve()
    return Path.cwd().resolve()


def resolve_target(root: Path, target: str | None) -> Path:
    resolved = Path(target).expanduser().resolve() if target else root
    if not resolved.exists():
        raise SystemExit(f"Target directory not found: {resolved}")
    return resolved


def resolve_paths(args: argparse.Namespace) -> HarvesterPaths:
    root = resolve_root(args.root)
    target = resolve_target(root, args.target)
    index_dir = Path(args.index_dir).expanduser() if args.index_dir else None
    return HarvesterPaths(root, target, index_dir)


def parse_exclude(value: str | None) -> list[str] | None:
    if not value:
        return None
    return parser.resolve_exclude_patterns(value)


def command_scan(args: argparse.Namespace) -> int:
    paths = resolve_paths(args)
    logger.info("Scanning %s", paths.target)
    models, files = parser.scan_directory(
        paths.target, paths.root, exclude=parse_exclude(args.exclude)
    )
    timestamp = normalize.now_iso()
    write_jsonl(paths.extracted_path, [model.to_dict() for model in models.values()])
    write_scan_report(paths, files, timestamp)
    failed = sum(1 for result in files.values() if result.status == "error")
    logger.info(
        "Extracted %d scripts from %d manifests (%d failed)",
        sum(model.script_count for model in models.values()),
        len(files),
        failed,
    )
    return 0


def command_update(args: argparse.Namespace) -> int:
    paths = resolve_paths(args)
    scan_report = load_scan_report(paths)
    if not scan_report:
        raise SystemExit("No scan report found. Run 'scan' first.")
    file_results = {
        file_path: parser.FileScanResult(
            file=entry.get("file", file_path),
            sha256=entry.get("sha256", ""),
            mtime=int(entry.get("mtime", 0)),
            script_count=int(entry.get("script_count", 0)),
            status=entry.get("status", "ok"),
            error=entry.get("error"),
        )
        for file_path, entry in scan_report.get("files", {}).items()
    }
    models: dict[str, Mapping[str, Any]] = {}
    if paths.extracted_path.exists():
        models = {str(model.get("uri")): model for model in read_jsonl(paths.extracted_path)}
    manifest_data = manifest.load_manifest(paths.manifest_path)
    manifest.update_manifest(manifest_data, file_results, normalize.now_iso(), models)
    manifest.save_manifest(paths.manifest_path, manifest_data)
    logger.info("Manifest updated with %d files", len(file_results))
    return 0


def command_render(args: argparse.Namespace) -> int:
    paths = resolve_paths(args)
    if not paths.extracted_path.exists():
        raise SystemExit("No extraction output found. Run 'scan' first.")
    content = renderer.render_summary(
        paths.extracted_path, paths.manifest_path, paths.summary_path
    )
    logger.info("Summary written to %s (%d characters)", paths.summary_path, len(content))
    return 0


def command_check(args: argparse.Namespace) -> int:
    paths = resolve_paths(args)
    manifest_data = manifest.load_manifest(paths.manifest_path)
    _, scan_results = parser.scan_directory(
        paths.target, paths.root, exclude=parse_exclude(args.exclude)
    )
    statuses = []
    for file_path, result in scan_results.items():
        previous = manifest_data.get("files", {}).get(file_path)
        status = manifest.determine_status(previous, result)
        statuses.append((file_path, status, result.script_count))
    missing = [path for path in (manifest_data.get("files", {}) or {}) if path not in scan_results]
    print_status_table(statuses, missing, manifest_data)
    return 0


def command_show(args: argparse.Namespace) -> int:
    path = Path(args.file).expanduser().resolve()
    if path.is_dir():
        path = path / parser.MANIFEST_NAME
    if not path.exists():
        raise SystemExit(f"Manifest not found: {path}")
    try:
        model = parser.read_document(path, path.parent)
    except parser.DocumentParseError as exc:
        logger.error("%s", exc)
        return 1
    if args.json:
        print(json.dumps(model.to_dict(), indent=2, ensure_ascii=False))
    else:
        print_script_table(model)
    return 0


def command_tasks(args: argparse.Namespace) -> int:
    paths = resolve_paths(args)
    models, _ = parser.scan_directory(
        paths.target, paths.root, exclude=parse_exclude(args.exclude)
    )
    rows: list[dict[str, object]] = []
    for uri, model in models.items():
        for provided in tasks.provide_tasks(
            model,
            paths.root / uri,
            paths.root,
            package_manager=args.package_manager,
            quiet=True if args.quiet else None,
            include_builtin=not args.no_builtin,
        ):
            rows.append(provided.task.to_dict() | {"command_line": provided.task.command_line})
    if args.json:
        print(json.dumps(rows, indent=2, ensure_ascii=False))
        return 0
    for row in rows:
        print(str(row["name"]).ljust(40), row["command_line"])
    return 0


def write_jsonl(path: Path, items: Iterable[dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        for item in items:
            fh.write(json.dumps(item, ensure_ascii=False))
            fh.write("\n")


def read_jsonl(path: Path) -> Iterable[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            if line.strip():
                yield json.loads(line)


def write_scan_report(
    paths: HarvesterPaths, files: Mapping[str, parser.FileScanResult], timestamp: str
) -> None:
    if paths.target.is_relative_to(paths.root):
        target_path = str(paths.target.relative_to(paths.root))
    else:
        target_path = str(paths.target)
    report = {
        "timestamp": timestamp,
        "target": target_path,
        "files": {file: data.to_dict() for file, data in files.items()},
        "counts": {
            "files": len(files),
            "errors": sum(1 for result in files.values() if result.status == "error"),
            "scripts": sum(result.script_count for result in files.values()),
        },
    }
    paths.scan_report_path.parent.mkdir(parents=True, exist_ok=True)
    with paths.scan_report_path.open("w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2)


def load_scan_report(paths: HarvesterPaths) -> dict[str, Any]:
    if not paths.scan_report_path.exists():
        return {}
    with paths.scan_report_path.open("r", encoding="utf-8") as fh:
        return cast(dict[str, Any], json.load(fh))


def print_script_table(model: DocumentScriptModel) -> None:
    if model.is_empty:
        print(f"{model.uri}: no scripts found")
        return
    print("Kind".ljust(16), "Name".ljust(24), "Type".ljust(10), "Line".ljust(6), "Command")
    print("-" * 95)
    for kind, collection in model.collections():
        for script in collection.scripts:
            script_type = (script.exec_type.value if script.exec_type else script.sub_kind) or ""
            print(
                kind.value.ljust(16),
                script.name.ljust(24),
                script_type.ljust(10),
                str(script.name_range.start.line + 1).ljust(6),
                script.value,
            )


def print_status_table(
    statuses: list[tuple[str, str, int]],
    missing: list[str],
    manifest_data: Mapping[str, Any],
) -> None:
    print("File".ljust(70), "Status".ljust(12), "Scripts")
    print("-" * 95)
    for file_path, status, count in sorted(statuses):
        print(file_path.ljust(70), status.ljust(12), str(count))
    for missing_path in missing:
        print(missing_path.ljust(70), "missing".ljust(12), "-")
    metadata = manifest_data.get("metadata", {})
    print("\nLast run:", metadata.get("last_run", "never"))


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(description="List scripts declared in pyproject.toml files")
    parser_obj.add_argument("--root", help="Workspace root (defaults to the current directory)")
    parser_obj.add_argument("--target", help="Directory to scan (defaults to the root)")
    parser_obj.add_argument("--index-dir", help="Where scan output is stored")
    parser_obj.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser_obj.add_subparsers(dest="command")

    exclude_help = "Comma-separated directory globs to skip (overrides PDM_TASKS_EXCLUDE)"

    scan_parser = subparsers.add_parser("scan", help="Scan for pyproject scripts")
    scan_parser.add_argument("--exclude", help=exclude_help)
    scan_parser.set_defaults(func=command_scan)

    update_parser = subparsers.add_parser("update", help="Update manifest from latest scan")
    update_parser.set_defaults(func=command_update)

    render_parser = subparsers.add_parser("render", help="Render Markdown summary")
    render_parser.set_defaults(func=command_render)

    check_parser = subparsers.add_parser("check", help="Dry-run status check")
    check_parser.add_argument("--exclude", help=exclude_help)
    check_parser.set_defaults(func=command_check)

    show_parser = subparsers.add_parser("show", help="Show the scripts of one manifest")
    show_parser.add_argument("file", help="pyproject.toml file or its directory")
    show_parser.add_argument("--json", action="store_true", help="Print JSON")
    show_parser.set_defaults(func=command_show)

    tasks_parser = subparsers.add_parser("tasks", help="List runnable task command lines")
    tasks_parser.add_argument("--exclude", help=exclude_help)
    tasks_parser.add_argument(
        "--package-manager",
        help="Executable used to run scripts (overrides PDM_TASKS_PACKAGE_MANAGER)",
    )
    tasks_parser.add_argument(
        "--quiet", action="store_true", help="Pass --quiet to the package manager"
    )
    tasks_parser.add_argument(
        "--no-builtin", action="store_true", help="Omit the install and build tasks"
    )
    tasks_parser.add_argument("--json", action="store_true", help="Print JSON")
    tasks_parser.set_defaults(func=command_tasks)

    return parser_obj


def main(argv: list[str] | None = None) -> int:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)
    if not getattr(args, "command", None):
        parser_obj.print_help()
        return 0
    configure_logging(args.verbose)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
