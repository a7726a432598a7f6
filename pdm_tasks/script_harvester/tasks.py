"""Turn extracted scripts into runnable task definitions."""
from __future__ import annotations

import logging
import os
import re
import shlex
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .model import DocumentScriptModel, ExecType, Range, ScriptKind, ScriptReference

logger = logging.getLogger(__name__)

DEFAULT_PACKAGE_MANAGER = "pdm"
INSTALL_SCRIPT = "install"
BUILD_SCRIPT = "build"

BUILD_NAMES = ("build", "compile", "watch")
TEST_NAMES = ("test",)
PRE_POST_SCRIPTS = {
    "post_init",
    "pre_install",
    "post_install",
    "post_lock",
    "pre_build",
    "post_build",
    "pre_publish",
    "post_publish",
    "pre_script",
    "post_script",
    "pre_run",
    "post_run",
}
DEBUG_FLAG_RE = re.compile(
    r"--(inspect|debug)(-brk)?"
    r"(=((\[[0-9a-fA-F:]*\]|[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+|[a-zA-Z0-9.]*):)?(\d+))?"
)
TRUTHY = {"1", "true", "yes", "on"}


class TaskGroup(str, Enum):
    BUILD = "build"
    TEST = "test"
    PRE_POST = "pre_post"
    DEBUG = "debug"


@dataclass(frozen=True)
class TaskDefinition:
    name: str
    script: str
    command: tuple[str, ...]
    cwd: str
    path: str | None = None
    detail: str | None = None
    group: TaskGroup | None = None
    kind: ScriptKind | None = None
    exec_type: ExecType | None = None

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "script": self.script,
            "command": list(self.command),
            "cwd": self.cwd,
            "path": self.path,
            "detail": self.detail,
            "group": self.group.value if self.group else None,
            "kind": self.kind.value if self.kind else None,
            "exec_type": self.exec_type.value if self.exec_type else None,
        }


@dataclass(frozen=True)
class TaskWithLocation:
    task: TaskDefinition
    uri: str | None = None
    location: Range | None = None
    script: ScriptReference | None = None


def resolve_package_manager(value: str | None = None) -> str:
    if value:
        return value
    env_value = os.environ.get("PDM_TASKS_PACKAGE_MANAGER", "").strip()
    return env_value or DEFAULT_PACKAGE_MANAGER


def resolve_quiet(value: bool | None = None) -> bool:
    if value is not None:
        return value
    return os.environ.get("PDM_TASKS_QUIET", "").strip().lower() in TRUTHY


def is_build_task(name: str) -> bool:
    return any(build_name in name for build_name in BUILD_NAMES)


def is_test_task(name: str) -> bool:
    return name in TEST_NAMES


def is_pre_post_script(name: str) -> bool:
    return name in PRE_POST_SCRIPTS


def is_debug_script(value: str) -> bool:
    return DEBUG_FLAG_RE.search(value) is not None


def classify_task(name: str, value: str | None = None) -> TaskGroup | None:
    lowered = name.lower()
    if is_build_task(lowered):
        return TaskGroup.BUILD
    if is_test_task(lowered):
        return TaskGroup.TEST
    if is_pre_post_script(lowered):
        return TaskGroup.PRE_POST
    if value and is_debug_script(value):
        return TaskGroup.DEBUG
    return None


def relative_manifest_dir(manifest_path: Path, root: Path) -> str:
    """Directory of ``manifest_path`` relative to ``root``; empty at the root."""

    try:
        relative = manifest_path.parent.relative_to(root).as_posix()
    except ValueError:
        return manifest_path.parent.as_posix()
    return "" if relative == "." else relative


def get_task_name(script: str, relative_path: str | None) -> str:
    if relative_path:
        return f"{script} - {relative_path.rstrip('/')}"
    return script


def create_task(
    script_name: str,
    cmd: Iterable[str],
    manifest_path: Path,
    root: Path,
    *,
    package_manager: str | None = None,
    quiet: bool | None = None,
    detail: str | None = None,
    script: ScriptReference | None = None,
) -> TaskDefinition:
    command = [resolve_package_manager(package_manager)]
    if resolve_quiet(quiet):
        command.append("--quiet")
    command.extend(cmd)
    relative = relative_manifest_dir(manifest_path, root)
    return TaskDefinition(
        name=get_task_name(script_name, relative),
        script=script_name,
        command=tuple(command),
        cwd=str(manifest_path.parent),
        path=relative or None,
        detail=detail,
        group=classify_task(script_name, detail),
        kind=script.kind if script else None,
        exec_type=script.exec_type if script else None,
    )


def provide_tasks(
    model: DocumentScriptModel,
    manifest_path: Path,
    root: Path,
    *,
    package_manager: str | None = None,
    quiet: bool | None = None,
    include_builtin: bool = True,
    kinds: Iterable[ScriptKind] | None = None,
) -> list[TaskWithLocation]:
    """Build one task per script in ``model`` plus the built-in install/build tasks."""

    wanted = set(kinds) if kinds is not None else None
    result: list[TaskWithLocation] = []
    for kind, collection in model.collections():
        if wanted is not None and kind not in wanted:
            continue
        for script in collection.scripts:
            task = create_task(
                script.name,
                ["run", script.name],
                manifest_path,
                root,
                package_manager=package_manager,
                quiet=quiet,
                detail=script.value,
                script=script,
            )
            result.append(
                TaskWithLocation(task=task, uri=model.uri, location=script.name_range, script=script)
            )
    if include_builtin:
        for name, detail in (
            (INSTALL_SCRIPT, "install dependencies from package"),
            (BUILD_SCRIPT, "build package"),
        ):
            task = create_task(
                name,
                [name],
                manifest_path,
                root,
                package_manager=package_manager,
                quiet=quiet,
                detail=detail,
            )
            result.append(TaskWithLocation(task=task, uri=model.uri))
    logger.debug("Provided %d tasks for %s", len(result), model.uri)
    return result
