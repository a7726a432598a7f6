"""Structural index over a TOML syntax tree.

The tree comes from tree-sitter's TOML grammar. It is walked once and detached
into small dataclasses so callers never hold on to tree-sitter objects; the
tables can then be looked up by their resolved key path.
"""
from __future__ import annotations

import logging
import tomllib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import tree_sitter_toml
from tree_sitter import Language, Node, Parser

from .model import Position, Range

logger = logging.getLogger(__name__)

TOML_LANGUAGE = Language(tree_sitter_toml.language())

KEY_TYPES = {"bare_key", "quoted_key", "dotted_key"}
VALUE_TYPES = {
    "string",
    "integer",
    "float",
    "boolean",
    "offset_date_time",
    "local_date_time",
    "local_date",
    "local_time",
    "array",
    "inline_table",
}


@dataclass(frozen=True)
class AstPosition:
    """1-based line, 0-based character column."""

    line: int
    column: int


@dataclass(frozen=True)
class AstLocation:
    start: AstPosition
    end: AstPosition


@dataclass(frozen=True)
class KeyToken:
    """A single key segment, either ``bare_key`` or ``quoted_key``."""

    type: str
    text: str
    loc: AstLocation


@dataclass(frozen=True)
class KeyNode:
    keys: tuple[KeyToken, ...]
    loc: AstLocation


@dataclass(frozen=True)
class ValueNode:
    type: str
    text: str
    loc: AstLocation


@dataclass(frozen=True)
class KeyValueNode:
    key: KeyNode
    value: ValueNode
    loc: AstLocation


@dataclass(frozen=True)
class TableNode:
    key: KeyNode
    resolved_key: tuple[str, ...]
    body: tuple[KeyValueNode, ...]
    loc: AstLocation


@dataclass
class TomlSyntaxTree:
    """Top-level body of a TOML document."""

    tables: list[TableNode] = field(default_factory=list)
    pairs: list[KeyValueNode] = field(default_factory=list)
    has_error: bool = False


class _PointMapper:
    """Turns tree-sitter points (0-based row, byte column) into ``AstPosition``."""

    def __init__(self, source: bytes) -> None:
        self._lines = source.split(b"\n")

    def position(self, point: Any) -> AstPosition:
        row = int(point.row)
        column = int(point.column)
        line = self._lines[row] if row < len(self._lines) else b""
        characters = len(line[:column].decode("utf-8", errors="replace"))
        return AstPosition(line=row + 1, column=characters)

    def location(self, start: Node, end: Node | None = None) -> AstLocation:
        last = end if end is not None else start
        return AstLocation(self.position(start.start_point), self.position(last.end_point))


def _node_text(node: Node) -> str:
    return (node.text or b"").decode("utf-8", errors="replace")


def _key_leaves(node: Node) -> list[Node]:
    if node.type == "dotted_key":
        leaves: list[Node] = []
        for child in node.named_children:
            if child.type in KEY_TYPES:
                leaves.extend(_key_leaves(child))
        return leaves
    return [node]


def _build_key(node: Node, mapper: _PointMapper) -> KeyNode:
    tokens = tuple(
        KeyToken(type=leaf.type, text=_node_text(leaf), loc=mapper.location(leaf))
        for leaf in _key_leaves(node)
    )
    return KeyNode(keys=tokens, loc=mapper.location(node))


def _build_pair(node: Node, mapper: _PointMapper) -> KeyValueNode | None:
    key_node: Node | None = None
    value_node: Node | None = None
    for child in node.named_children:
        if key_node is None and child.type in KEY_TYPES:
            key_node = child
        elif key_node is not None and child.type in VALUE_TYPES:
            value_node = child
            break
    if key_node is None or value_node is None:
        logger.debug("Skipping incomplete pair at %s", node.start_point)
        return None
    value = ValueNode(
        type=value_node.type,
        text=_node_text(value_node),
        loc=mapper.location(value_node),
    )
    return KeyValueNode(
        key=_build_key(key_node, mapper),
        value=value,
        loc=mapper.location(key_node, value_node),
    )


def _build_table(node: Node, mapper: _PointMapper) -> TableNode | None:
    key_node: Node | None = None
    last: Node | None = None
    body: list[KeyValueNode] = []
    for child in node.children:
        if child.type == "comment" or not _node_text(child).strip():
            continue
        if key_node is None and child.type in KEY_TYPES:
            key_node = child
        elif child.type == "pair":
            pair = _build_pair(child, mapper)
            if pair is None:
                continue
            body.append(pair)
        elif child.is_named:
            continue
        last = child
    if key_node is None:
        return None
    key = _build_key(key_node, mapper)
    resolved = resolve_key(key.keys)
    if resolved is None:
        logger.debug("Skipping table with unreadable header: %s", _node_text(key_node))
        return None
    start = mapper.position(node.start_point)
    end = body[-1].loc.end if body else mapper.position((last or node).end_point)
    return TableNode(key=key, resolved_key=resolved, body=tuple(body), loc=AstLocation(start, end))


def parse_syntax_tree(text: str) -> TomlSyntaxTree:
    """Parse ``text`` and index its top-level pairs and bracketed tables.

    Arrays of tables are not indexed.
    """

    source = text.encode("utf-8")
    tree = Parser(TOML_LANGUAGE).parse(source)
    root = tree.root_node
    mapper = _PointMapper(source)
    result = TomlSyntaxTree(has_error=bool(root.has_error))
    for child in root.named_children:
        if child.type == "pair":
            pair = _build_pair(child, mapper)
            if pair is not None:
                result.pairs.append(pair)
        elif child.type == "table":
            table = _build_table(child, mapper)
            if table is not None:
                result.tables.append(table)
    if result.has_error:
        logger.debug("TOML syntax tree contains error nodes")
    return result


def key_name(token: KeyToken) -> str | None:
    """Return the plain text of a bare or quoted key segment."""

    if token.type == "bare_key":
        return token.text
    if token.type == "quoted_key":
        if token.text.startswith("'"):
            return token.text[1:-1]
        value = _decode_value(token.text)
        return value if isinstance(value, str) else None
    return None


def resolve_key(tokens: Iterable[KeyToken]) -> tuple[str, ...] | None:
    names: list[str] = []
    for token in tokens:
        name = key_name(token)
        if name is None:
            return None
        names.append(name)
    return tuple(names)


def _decode_value(text: str) -> Any:
    try:
        return tomllib.loads(f"value = {text}")["value"]
    except tomllib.TOMLDecodeError:
        return None


def literal_value(node: ValueNode) -> Any:
    """Decode a single value token; ``None`` when it cannot stand on its own."""

    return _decode_value(node.text)


def find_table(tree: TomlSyntaxTree, key_path: Sequence[str]) -> TableNode | None:
    """Return the only table whose header resolves to ``key_path``."""

    wanted = tuple(key_path)
    matches = [table for table in tree.tables if table.resolved_key == wanted]
    if len(matches) != 1:
        return None
    return matches[0]


def find_table_and_descendants(
    tree: TomlSyntaxTree, key_path: Sequence[str]
) -> tuple[TableNode | None, list[TableNode]]:
    """Return the table at ``key_path`` and every deeper ``[key_path.*]`` table."""

    wanted = tuple(key_path)
    depth = len(wanted)
    sub_tables = [
        table
        for table in tree.tables
        if len(table.resolved_key) > depth and table.resolved_key[:depth] == wanted
    ]
    return find_table(tree, wanted), sub_tables


def find_pair(table: TableNode, name: str) -> KeyValueNode | None:
    for pair in table.body:
        if len(pair.key.keys) == 1 and key_name(pair.key.keys[0]) == name:
            return pair
    return None


def to_position(position: AstPosition) -> Position:
    return Position(position.line - 1, position.column)


def to_range(loc: AstLocation) -> Range:
    return Range(to_position(loc.start), to_position(loc.end))


def span_range(first: AstLocation, last: AstLocation) -> Range:
    return Range(to_position(first.start), to_position(last.end))
