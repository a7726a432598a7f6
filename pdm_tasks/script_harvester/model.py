"""Records produced by the script extractors."""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ScriptKind(str, Enum):
    PDM_SCRIPT = "pdm_script"
    PROJECT_SCRIPT = "project_script"
    POETRY_SCRIPT = "poetry_script"


class ExecType(str, Enum):
    """How a pdm script value is meant to be run.

    ``cmd`` is a direct command, ``shell`` goes through the shell, ``composite``
    lists other scripts and ``call`` names a Python callable.
    """

    CMD = "cmd"
    SHELL = "shell"
    COMPOSITE = "composite"
    CALL = "call"


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line and character offset, as editors count them."""

    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position

    def contains(self, position: Position) -> bool:
        # Both ends are inclusive.
        return self.start <= position <= self.end

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


@dataclass(frozen=True)
class ScriptReference:
    kind: ScriptKind
    name: str
    value: str
    name_range: Range
    value_range: Range
    help: str | None = None
    exec_type: ExecType | None = None
    sub_kind: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "value": self.value,
            "name_range": self.name_range.to_dict(),
            "value_range": self.value_range.to_dict(),
            "help": self.help,
            "exec_type": self.exec_type.value if self.exec_type else None,
            "sub_kind": self.sub_kind,
        }


@dataclass(frozen=True)
class ScriptCollection:
    """Scripts of one kind read from one document, in declaration order."""

    location: Range
    scripts: tuple[ScriptReference, ...] = ()

    def __iter__(self) -> Iterator[ScriptReference]:
        return iter(self.scripts)

    def __len__(self) -> int:
        return len(self.scripts)

    def names(self) -> list[str]:
        return [script.name for script in self.scripts]

    def to_dict(self) -> dict[str, object]:
        return {
            "location": self.location.to_dict(),
            "scripts": [script.to_dict() for script in self.scripts],
        }


@dataclass(frozen=True)
class PluginDeclaration:
    location: Range
    plugins: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {"location": self.location.to_dict(), "plugins": list(self.plugins)}


@dataclass(frozen=True)
class BuildSystemDeclaration:
    location: Range
    build_backend: str | None = None
    requires: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "location": self.location.to_dict(),
            "build_backend": self.build_backend,
            "requires": list(self.requires) if self.requires is not None else None,
        }


@dataclass(frozen=True)
class DocumentScriptModel:
    """Everything the extractors found in one manifest.

    Built fresh on every parse and never mutated; it keeps no reference to the
    syntax tree, so it can be cached by ``(uri, version)``.
    """

    uri: str
    pdm_scripts: ScriptCollection | None = None
    project_scripts: ScriptCollection | None = None
    poetry_scripts: ScriptCollection | None = None
    plugins: PluginDeclaration | None = None
    build_system: BuildSystemDeclaration | None = None

    def collection(self, kind: ScriptKind) -> ScriptCollection | None:
        return {
            ScriptKind.PDM_SCRIPT: self.pdm_scripts,
            ScriptKind.PROJECT_SCRIPT: self.project_scripts,
            ScriptKind.POETRY_SCRIPT: self.poetry_scripts,
        }[kind]

    def collections(self) -> Iterator[tuple[ScriptKind, ScriptCollection]]:
        for kind in ScriptKind:
            collection = self.collection(kind)
            if collection is not None:
                yield kind, collection

    def iter_scripts(self) -> Iterator[ScriptReference]:
        for _, collection in self.collections():
            yield from collection.scripts

    @property
    def script_count(self) -> int:
        return sum(len(collection) for _, collection in self.collections())

    @property
    def is_empty(self) -> bool:
        return self.script_count == 0

    def to_dict(self) -> dict[str, object]:
        def dump(value: Any) -> Any:
            return value.to_dict() if value is not None else None

        return {
            "uri": self.uri,
            "pdm_scripts": dump(self.pdm_scripts),
            "project_scripts": dump(self.project_scripts),
            "poetry_scripts": dump(self.poetry_scripts),
            "plugins": dump(self.plugins),
            "build_system": dump(self.build_system),
        }
