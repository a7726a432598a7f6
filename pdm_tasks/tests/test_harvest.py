from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

import pytest

from pdm_tasks.script_harvester import manifest, normalize, parser, read_pyproject, renderer
from pdm_tasks.scripts import list_scripts

ROOT_PYPROJECT = """\
[build-system]
requires = ["pdm-backend"]
build-backend = "pdm.backend"

[project]
name = "workspace"

[project.scripts]
workspace = "workspace.cli:main"

[tool.pdm]
plugins = ["pdm-autoexport"]

[tool.pdm.scripts]
lint = "ruff check ."
test = {shell = "pytest -q", help = "run tests"}
"""

SUB_PYPROJECT = """\
[tool.pdm.scripts]
test = "pytest"
"""

EMPTY_PYPROJECT = """\
[project]
name = "empty"
"""


@pytest.fixture()
def sandbox(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.delenv("PDM_TASKS_EXCLUDE", raising=False)
    monkeypatch.delenv("PDM_TASKS_PACKAGE_MANAGER", raising=False)
    monkeypatch.delenv("PDM_TASKS_QUIET", raising=False)
    root = tmp_path / "repo"
    files = {
        "pyproject.toml": ROOT_PYPROJECT,
        "sub/pyproject.toml": SUB_PYPROJECT,
        "docs/pyproject.toml": EMPTY_PYPROJECT,
        "broken/pyproject.toml": '[tool.pdm.scripts]\nlint = "ruff\n',
        ".venv/lib/pyproject.toml": SUB_PYPROJECT,
        "vendor/pkg/pyproject.toml": SUB_PYPROJECT,
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_scan_directory_isolates_broken_files(sandbox: Path) -> None:
    models, files = parser.scan_directory(sandbox, sandbox)
    assert sorted(files) == [
        "broken/pyproject.toml",
        "docs/pyproject.toml",
        "pyproject.toml",
        "sub/pyproject.toml",
        "vendor/pkg/pyproject.toml",
    ]
    assert "broken/pyproject.toml" not in models
    assert files["broken/pyproject.toml"].status == "error"
    assert files["broken/pyproject.toml"].error
    assert files["pyproject.toml"].script_count == 3
    assert models["docs/pyproject.toml"].is_empty
    assert models["sub/pyproject.toml"].pdm_scripts is not None


def test_scan_directory_honors_exclude_globs(
    sandbox: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _, files = parser.scan_directory(sandbox, sandbox, exclude=["vendor/*", "broken"])
    assert "vendor/pkg/pyproject.toml" not in files
    assert "broken/pyproject.toml" not in files

    monkeypatch.setenv("PDM_TASKS_EXCLUDE", "docs, sub")
    _, files = parser.scan_directory(sandbox, sandbox)
    assert "docs/pyproject.toml" not in files
    assert "sub/pyproject.toml" not in files
    assert "pyproject.toml" in files


def test_read_pyproject(sandbox: Path) -> None:
    model = read_pyproject(sandbox / "pyproject.toml")
    assert model.uri == "pyproject.toml"
    assert model.plugins is not None
    assert model.plugins.plugins == ("pdm-autoexport",)
    assert model.build_system is not None
    assert model.build_system.build_backend == "pdm.backend"
    with pytest.raises(parser.DocumentParseError):
        read_pyproject(sandbox / "broken" / "pyproject.toml")


def test_manifest_updates_status(sandbox: Path) -> None:
    models, files = parser.scan_directory(sandbox, sandbox)
    manifest_data = manifest.ensure_manifest()
    manifest.update_manifest(manifest_data, files, normalize.now_iso(), models)
    files_data = cast(dict[str, dict[str, Any]], manifest_data["files"])
    assert files_data["broken/pyproject.toml"]["status"] == "error"
    assert files_data["pyproject.toml"]["status"] == "new"
    assert files_data["pyproject.toml"]["scripts_by_kind"] == {
        "pdm_script": 2,
        "project_script": 1,
    }
    assert files_data["pyproject.toml"]["build_backend"] == "pdm.backend"
    assert manifest_data["metadata"]["script_count"] == 5

    (sandbox / "sub" / "pyproject.toml").write_text(
        SUB_PYPROJECT + 'lint = "ruff"\n', encoding="utf-8"
    )
    (sandbox / "docs" / "pyproject.toml").unlink()
    models, files = parser.scan_directory(sandbox, sandbox)
    manifest.update_manifest(manifest_data, files, normalize.now_iso(), models)
    assert files_data["pyproject.toml"]["status"] == "unchanged"
    assert files_data["sub/pyproject.toml"]["status"] == "modified"
    assert files_data["docs/pyproject.toml"]["status"] == "missing"


def test_count_by_kind_accepts_serialized_models(sandbox: Path) -> None:
    model = read_pyproject(sandbox / "pyproject.toml")
    assert manifest.count_by_kind(model.to_dict()) == manifest.count_by_kind(model)
    assert manifest.build_backend_of(model.to_dict()) == "pdm.backend"
    assert manifest.count_by_kind(None) == {}


def test_cli_scan_update_render(sandbox: Path) -> None:
    assert list_scripts.main(["--root", str(sandbox), "scan"]) == 0
    index_dir = sandbox / ".pdm-tasks"
    report = json.loads((index_dir / "scan_report.json").read_text(encoding="utf-8"))
    assert report["counts"]["errors"] == 1
    assert report["files"]["broken/pyproject.toml"]["status"] == "error"
    lines = (index_dir / "scripts.jsonl").read_text(encoding="utf-8").splitlines()
    uris = {json.loads(line)["uri"] for line in lines}
    assert "pyproject.toml" in uris
    assert "broken/pyproject.toml" not in uris

    assert list_scripts.main(["--root", str(sandbox), "update"]) == 0
    manifest_data = json.loads((index_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest_data["files"]["pyproject.toml"]["status"] == "new"

    assert list_scripts.main(["--root", str(sandbox), "update"]) == 0
    manifest_data = json.loads((index_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest_data["files"]["pyproject.toml"]["status"] == "unchanged"

    assert list_scripts.main(["--root", str(sandbox), "render"]) == 0
    summary = (index_dir / "SUMMARY.md").read_text(encoding="utf-8")
    assert "# Workspace Scripts" in summary
    assert "### PDM scripts" in summary
    assert "| test | `pytest -q` | shell | run tests | 16 |" in summary
    assert "**PDM plugins:** pdm-autoexport" in summary
    assert renderer.NO_SCRIPTS in summary


def test_cli_update_requires_scan(sandbox: Path) -> None:
    with pytest.raises(SystemExit):
        list_scripts.main(["--root", str(sandbox), "update"])


def test_cli_show(sandbox: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert list_scripts.main(["show", str(sandbox), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["uri"] == "pyproject.toml"
    assert [script["name"] for script in data["pdm_scripts"]["scripts"]] == ["lint", "test"]

    assert list_scripts.main(["show", str(sandbox / "sub")]) == 0
    assert "pytest" in capsys.readouterr().out

    assert list_scripts.main(["show", str(sandbox / "broken" / "pyproject.toml")]) == 1


def test_cli_tasks(sandbox: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert list_scripts.main(["--root", str(sandbox), "tasks", "--exclude", "broken"]) == 0
    out = capsys.readouterr().out
    assert "test - sub" in out
    assert "pdm run test" in out

    assert (
        list_scripts.main(
            [
                "--root",
                str(sandbox),
                "tasks",
                "--json",
                "--no-builtin",
                "--package-manager",
                "uv",
                "--quiet",
            ]
        )
        == 0
    )
    rows = json.loads(capsys.readouterr().out)
    assert all(row["script"] not in {"install"} for row in rows)
    lint = next(row for row in rows if row["name"] == "lint")
    assert lint["command_line"] == "uv --quiet run lint"


def test_non_utf8_manifest_is_a_parse_error(
    sandbox: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    latin = sandbox / "latin" / "pyproject.toml"
    latin.parent.mkdir()
    latin.write_bytes(b'[tool.pdm.scripts]\na = "\xff"\n')
    with pytest.raises(parser.DocumentParseError) as excinfo:
        read_pyproject(latin)
    assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)
    assert excinfo.value.uri == "pyproject.toml"

    assert list_scripts.main(["show", str(latin)]) == 1
    assert capsys.readouterr().out == ""

    _, files = parser.scan_directory(sandbox, sandbox)
    assert files["latin/pyproject.toml"].status == "error"


def test_count_by_kind_keeps_empty_collections(tmp_path: Path) -> None:
    path = tmp_path / "pyproject.toml"
    path.write_text("[project.scripts]\n", encoding="utf-8")
    model = read_pyproject(path)
    assert manifest.count_by_kind(model) == {"project_script": 0}
    assert manifest.count_by_kind(model.to_dict()) == {"project_script": 0}
