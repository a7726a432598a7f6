"""Position lookups used by hover and jump-to-definition."""
from __future__ import annotations

from collections.abc import Iterable, Iterator

from .model import DocumentScriptModel, Position, ScriptKind, ScriptReference


def _candidates(
    model: DocumentScriptModel, kinds: Iterable[ScriptKind] | None
) -> Iterator[ScriptReference]:
    wanted = set(kinds) if kinds is not None else None
    for kind, collection in model.collections():
        if wanted is None or kind in wanted:
            yield from collection.scripts


def find_script_at_position(
    model: DocumentScriptModel,
    position: Position,
    kinds: Iterable[ScriptKind] | None = None,
) -> ScriptReference | None:
    """Return the script whose name contains ``position``."""

    for script in _candidates(model, kinds):
        if script.name_range.contains(position):
            return script
    return None


def find_script_in_span(
    model: DocumentScriptModel,
    position: Position,
    kinds: Iterable[ScriptKind] | None = None,
) -> ScriptReference | None:
    """Return the script declared anywhere between its name and the end of its value."""

    for script in _candidates(model, kinds):
        if script.name_range.start <= position <= script.value_range.end:
            return script
    return None


def find_script_by_name(
    model: DocumentScriptModel,
    name: str,
    kind: ScriptKind | None = None,
) -> ScriptReference | None:
    for script in _candidates(model, [kind] if kind is not None else None):
        if script.name == name:
            return script
    return None
