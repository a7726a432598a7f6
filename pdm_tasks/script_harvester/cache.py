"""Single-slot cache for the most recently parsed manifest."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from hashlib import sha256

from .model import DocumentScriptModel
from .parser import parse_document

logger = logging.getLogger(__name__)


def text_version(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class _Entry:
    uri: str
    version: str
    model: DocumentScriptModel


class DocumentCache:
    """Keeps the last parsed document keyed by ``(uri, version)``.

    Hover and position lookups hit the same document repeatedly; this avoids
    re-parsing until the text changes. Callers invalidate it on text or
    configuration changes. Parse errors are never cached.
    """

    def __init__(self) -> None:
        self._entry: _Entry | None = None
        self.hits = 0
        self.misses = 0

    def get(self, uri: str, text: str, version: str | int | None = None) -> DocumentScriptModel:
        key = str(version) if version is not None else text_version(text)
        entry = self._entry
        if entry is not None and entry.uri == uri and entry.version == key:
            self.hits += 1
            return entry.model
        self.misses += 1
        model = parse_document(text, uri)
        self._entry = _Entry(uri=uri, version=key, model=model)
        logger.debug("Cached %s (version %s)", uri, key[:12])
        return model

    def peek(self, uri: str) -> DocumentScriptModel | None:
        entry = self._entry
        if entry is None or entry.uri != uri:
            return None
        return entry.model

    def invalidate(self, uri: str | None = None) -> None:
        if uri is None or (self._entry is not None and self._entry.uri == uri):
            self._entry = None
