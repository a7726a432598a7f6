from __future__ import annotations

from pathlib import Path

import pytest

from pdm_tasks.script_harvester import tasks
from pdm_tasks.script_harvester.model import ExecType, ScriptKind
from pdm_tasks.script_harvester.parser import parse_document

PYPROJECT = """\
[tool.pdm.scripts]
build = "python -m build"
test = {shell = "pytest -q", help = "run tests"}
post_install = "echo done"
serve = "python --inspect=9229 app.py"
lint = "ruff check ."

[project.scripts]
cli = "pkg:main"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PDM_TASKS_PACKAGE_MANAGER", raising=False)
    monkeypatch.delenv("PDM_TASKS_QUIET", raising=False)


def test_create_task_in_nested_manifest(tmp_path: Path) -> None:
    task = tasks.create_task(
        "lint", ["run", "lint"], tmp_path / "sub" / "pyproject.toml", tmp_path
    )
    assert task.name == "lint - sub"
    assert task.command == ("pdm", "run", "lint")
    assert task.command_line == "pdm run lint"
    assert task.path == "sub"
    assert task.cwd == str(tmp_path / "sub")
    assert task.group is None


def test_create_task_at_root_has_plain_name(tmp_path: Path) -> None:
    task = tasks.create_task("lint", ["run", "lint"], tmp_path / "pyproject.toml", tmp_path)
    assert task.name == "lint"
    assert task.path is None
    assert tasks.relative_manifest_dir(tmp_path / "pyproject.toml", tmp_path) == ""


def test_package_manager_and_quiet_from_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PDM_TASKS_PACKAGE_MANAGER", "uv")
    monkeypatch.setenv("PDM_TASKS_QUIET", "true")
    task = tasks.create_task("test", ["run", "test"], tmp_path / "pyproject.toml", tmp_path)
    assert task.command == ("uv", "--quiet", "run", "test")
    explicit = tasks.create_task(
        "test",
        ["run", "test"],
        tmp_path / "pyproject.toml",
        tmp_path,
        package_manager="pdm",
        quiet=False,
    )
    assert explicit.command == ("pdm", "run", "test")


@pytest.mark.parametrize(
    ("name", "value", "group"),
    [
        ("build", None, tasks.TaskGroup.BUILD),
        ("compile-docs", None, tasks.TaskGroup.BUILD),
        ("Watch", None, tasks.TaskGroup.BUILD),
        ("test", None, tasks.TaskGroup.TEST),
        ("tests", None, None),
        ("pre_build", None, tasks.TaskGroup.BUILD),
        ("post_install", None, tasks.TaskGroup.PRE_POST),
        ("pre_run", None, tasks.TaskGroup.PRE_POST),
        ("serve", "python --inspect-brk=127.0.0.1:9229 app.py", tasks.TaskGroup.DEBUG),
        ("serve", "python --debug app.py", tasks.TaskGroup.DEBUG),
        ("serve", "flask run", None),
    ],
)
def test_classify_task(name: str, value: str | None, group: tasks.TaskGroup | None) -> None:
    assert tasks.classify_task(name, value) is group


def test_get_task_name() -> None:
    assert tasks.get_task_name("lint", "packages/core/") == "lint - packages/core"
    assert tasks.get_task_name("lint", None) == "lint"
    assert tasks.get_task_name("lint", "") == "lint"


def test_provide_tasks_covers_scripts_and_builtins(tmp_path: Path) -> None:
    model = parse_document(PYPROJECT, "sub/pyproject.toml")
    provided = tasks.provide_tasks(model, tmp_path / "sub" / "pyproject.toml", tmp_path)
    names = [item.task.name for item in provided]
    assert names == [
        "build - sub",
        "test - sub",
        "post_install - sub",
        "serve - sub",
        "lint - sub",
        "cli - sub",
        "install - sub",
        "build - sub",
    ]
    by_script = {item.task.script: item for item in provided if item.script is not None}
    test_task = by_script["test"]
    assert test_task.location == test_task.script.name_range
    assert test_task.task.group is tasks.TaskGroup.TEST
    assert test_task.task.exec_type is ExecType.SHELL
    assert test_task.task.kind is ScriptKind.PDM_SCRIPT
    assert test_task.task.detail == "pytest -q"
    assert by_script["serve"].task.group is tasks.TaskGroup.DEBUG
    assert by_script["cli"].task.command == ("pdm", "run", "cli")

    install, build = provided[-2:]
    assert install.script is None and install.location is None
    assert install.task.command == ("pdm", "install")
    assert install.task.detail == "install dependencies from package"
    assert build.task.command == ("pdm", "build")
    assert build.task.group is tasks.TaskGroup.BUILD


def test_provide_tasks_filters(tmp_path: Path) -> None:
    model = parse_document(PYPROJECT, "pyproject.toml")
    provided = tasks.provide_tasks(
        model,
        tmp_path / "pyproject.toml",
        tmp_path,
        include_builtin=False,
        kinds=[ScriptKind.PROJECT_SCRIPT],
        quiet=True,
    )
    assert [item.task.command for item in provided] == [("pdm", "--quiet", "run", "cli")]


def test_task_to_dict() -> None:
    task = tasks.TaskDefinition(
        name="test", script="test", command=("pdm", "run", "test"), cwd=".", group=tasks.TaskGroup.TEST
    )
    data = task.to_dict()
    assert data["command"] == ["pdm", "run", "test"]
    assert data["group"] == "test"
    assert data["kind"] is None
