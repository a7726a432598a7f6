"""Normalization helpers shared by the script extractors."""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .model import ExecType, Range, ScriptKind, ScriptReference

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "_"


@dataclass
class ScriptDraft:
    """A script while its value and ranges are still being collected."""

    name: str
    value: Any = None
    exec_type: ExecType | None = None
    help: str | None = None
    sub_kind: str | None = None
    name_range: Range | None = None
    value_range: Range | None = None


def now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def is_placeholder_name(name: str) -> bool:
    return name == PLACEHOLDER_NAME


def coerce_value(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = json.dumps(value, ensure_ascii=False, default=str)
    return value.strip()


def normalize_script(draft: ScriptDraft, kind: ScriptKind) -> ScriptReference | None:
    if not draft.name or is_placeholder_name(draft.name):
        return None
    value = coerce_value(draft.value)
    if not value:
        logger.debug("Dropping %s %r: empty value", kind.value, draft.name)
        return None
    if draft.name_range is None or draft.value_range is None:
        logger.debug("Dropping %s %r: no source location", kind.value, draft.name)
        return None
    return ScriptReference(
        kind=kind,
        name=draft.name,
        value=value,
        name_range=draft.name_range,
        value_range=draft.value_range,
        help=draft.help,
        exec_type=draft.exec_type,
        sub_kind=draft.sub_kind,
    )


def finalize_scripts(drafts: Iterable[ScriptDraft], kind: ScriptKind) -> tuple[ScriptReference, ...]:
    scripts: list[ScriptReference] = []
    for draft in drafts:
        script = normalize_script(draft, kind)
        if script is not None:
            scripts.append(script)
    return tuple(scripts)
