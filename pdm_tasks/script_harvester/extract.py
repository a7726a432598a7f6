"""Script extractors, one per manifest schema.

Each extractor takes the indexed syntax tree and the plain values of the same
document and returns ``None`` when its schema is absent. None of them raise on
unexpected shapes: the offending entry is logged and skipped.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .model import (
    BuildSystemDeclaration,
    ExecType,
    PluginDeclaration,
    ScriptCollection,
    ScriptKind,
)
from .normalize import ScriptDraft, finalize_scripts, is_placeholder_name
from .tomlindex import (
    TableNode,
    TomlSyntaxTree,
    find_pair,
    find_table,
    find_table_and_descendants,
    key_name,
    literal_value,
    resolve_key,
    span_range,
    to_range,
)

logger = logging.getLogger(__name__)

PDM_SCRIPTS_PATH = ("tool", "pdm", "scripts")
PDM_TOOL_PATH = ("tool", "pdm")
PROJECT_SCRIPTS_PATH = ("project", "scripts")
POETRY_SCRIPTS_PATH = ("tool", "poetry", "scripts")
BUILD_SYSTEM_PATH = ("build-system",)

# First present key wins when a script sets more than one.
EXEC_PRIORITY = (ExecType.CMD, ExecType.SHELL, ExecType.COMPOSITE, ExecType.CALL)

HELP_KEY = "help"
SCRIPTS_SUB_KIND = "scripts"


def lookup_path(values: Mapping[str, Any], path: Sequence[str]) -> Any:
    current: Any = values
    for segment in path:
        if not isinstance(current, Mapping) or segment not in current:
            return None
        current = current[segment]
    return current


def classify_pdm_script(name: str, declaration: Any) -> ScriptDraft | None:
    if isinstance(declaration, str):
        return ScriptDraft(name=name, value=declaration, exec_type=ExecType.CMD)
    if not isinstance(declaration, Mapping):
        logger.debug("Unsupported pdm script %r of type %s", name, type(declaration).__name__)
        return None
    draft = ScriptDraft(name=name)
    for exec_type in EXEC_PRIORITY:
        if exec_type.value in declaration:
            draft.value = declaration[exec_type.value]
            draft.exec_type = exec_type
            break
    help_text = declaration.get(HELP_KEY)
    if isinstance(help_text, str):
        draft.help = help_text
    if draft.exec_type is None:
        logger.debug("pdm script %r has no cmd, shell, composite or call", name)
    return draft


def _apply_pair_ranges(drafts: Mapping[str, ScriptDraft], table: TableNode) -> None:
    for pair in table.body:
        names = resolve_key(pair.key.keys)
        if not names:
            continue
        draft = drafts.get(names[0])
        if draft is None:
            logger.debug("No pdm script found for key %r", names[0])
            continue
        if len(names) == 1:
            draft.name_range = to_range(pair.key.loc)
            draft.value_range = to_range(pair.value.loc)
            continue
        sub_key = names[1]
        if sub_key == HELP_KEY:
            help_text = literal_value(pair.value)
            if isinstance(help_text, str):
                draft.help = help_text
        elif draft.exec_type is not None and sub_key == draft.exec_type.value:
            draft.name_range = to_range(pair.key.loc)
            draft.value_range = to_range(pair.value.loc)


def _apply_sub_table_ranges(
    drafts: Mapping[str, ScriptDraft], sub_tables: Sequence[TableNode]
) -> None:
    depth = len(PDM_SCRIPTS_PATH)
    for sub_table in sub_tables:
        name = sub_table.resolved_key[depth]
        if is_placeholder_name(name):
            continue
        draft = drafts.get(name)
        if draft is None:
            logger.debug("No pdm script found for table %r", name)
            continue
        draft.name_range = to_range(sub_table.loc)
        draft.value_range = to_range(sub_table.loc)


def extract_pdm_scripts(
    tree: TomlSyntaxTree, values: Mapping[str, Any]
) -> ScriptCollection | None:
    """Read ``[tool.pdm.scripts]``, inline and out-of-line declarations alike."""

    declared = lookup_path(values, PDM_SCRIPTS_PATH)
    if not isinstance(declared, Mapping):
        logger.debug("No pdm scripts declared")
        return None
    table, descendants = find_table_and_descendants(tree, PDM_SCRIPTS_PATH)
    # Only [tool.pdm.scripts.<name>]; deeper tables hold options like env.
    sub_tables = [
        sub_table
        for sub_table in descendants
        if len(sub_table.resolved_key) == len(PDM_SCRIPTS_PATH) + 1
    ]
    if table is None and not sub_tables:
        logger.debug("pdm scripts are not declared with a table header")
        return None

    drafts: dict[str, ScriptDraft] = {}
    for name, declaration in declared.items():
        draft = classify_pdm_script(name, declaration)
        if draft is not None:
            drafts[name] = draft
    if table is not None:
        _apply_pair_ranges(drafts, table)
    _apply_sub_table_ranges(drafts, sub_tables)

    if table is not None:
        location = to_range(table.loc)
    else:
        location = span_range(sub_tables[0].loc, sub_tables[-1].loc)
    return ScriptCollection(
        location=location,
        scripts=finalize_scripts(drafts.values(), ScriptKind.PDM_SCRIPT),
    )


def _extract_flat_scripts(
    tree: TomlSyntaxTree,
    values: Mapping[str, Any],
    path: Sequence[str],
    kind: ScriptKind,
) -> ScriptCollection | None:
    if not isinstance(lookup_path(values, path), Mapping):
        return None
    table = find_table(tree, path)
    if table is None:
        logger.debug("%s is not declared with a table header", ".".join(path))
        return None
    drafts: list[ScriptDraft] = []
    for pair in table.body:
        if len(pair.key.keys) != 1:
            logger.debug("Skipping dotted key in %s", ".".join(path))
            continue
        name = key_name(pair.key.keys[0])
        if not name:
            continue
        if pair.value.type != "string":
            logger.debug("Skipping %s %r: value is %s", kind.value, name, pair.value.type)
            continue
        value = literal_value(pair.value)
        if not isinstance(value, str):
            continue
        # The whole ``name = "value"`` line anchors both ranges.
        pair_range = to_range(pair.loc)
        drafts.append(
            ScriptDraft(
                name=name,
                value=value,
                sub_kind=SCRIPTS_SUB_KIND,
                name_range=pair_range,
                value_range=pair_range,
            )
        )
    return ScriptCollection(location=to_range(table.loc), scripts=finalize_scripts(drafts, kind))


def extract_project_scripts(
    tree: TomlSyntaxTree, values: Mapping[str, Any]
) -> ScriptCollection | None:
    """Read ``[project.scripts]`` console entry points."""

    return _extract_flat_scripts(tree, values, PROJECT_SCRIPTS_PATH, ScriptKind.PROJECT_SCRIPT)


def extract_poetry_scripts(
    tree: TomlSyntaxTree, values: Mapping[str, Any]
) -> ScriptCollection | None:
    """Read ``[tool.poetry.scripts]``; a table without usable entries yields ``None``."""

    collection = _extract_flat_scripts(
        tree, values, POETRY_SCRIPTS_PATH, ScriptKind.POETRY_SCRIPT
    )
    if collection is None or not collection.scripts:
        return None
    return collection


def extract_pdm_plugins(
    tree: TomlSyntaxTree, values: Mapping[str, Any]
) -> PluginDeclaration | None:
    plugins = lookup_path(values, (*PDM_TOOL_PATH, "plugins"))
    if not isinstance(plugins, list) or not plugins:
        return None
    table = find_table(tree, PDM_TOOL_PATH)
    if table is None:
        return None
    pair = find_pair(table, "plugins")
    if pair is None or pair.value.type != "array":
        return None
    # Entries are trusted to be requirement strings.
    return PluginDeclaration(location=to_range(pair.loc), plugins=tuple(plugins))


def extract_build_system(
    tree: TomlSyntaxTree, values: Mapping[str, Any]
) -> BuildSystemDeclaration | None:
    """Read ``[build-system]``; only the table-header style is supported."""

    build_system = values.get("build-system")
    if not isinstance(build_system, Mapping):
        return None
    table = find_table(tree, BUILD_SYSTEM_PATH)
    if table is None:
        return None
    backend = build_system.get("build-backend")
    requires = build_system.get("requires")
    return BuildSystemDeclaration(
        location=to_range(table.loc),
        build_backend=backend if isinstance(backend, str) else None,
        requires=tuple(requires) if isinstance(requires, list) else None,
    )
