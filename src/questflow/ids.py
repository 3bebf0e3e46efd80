"""Cross-file identifier index for duplicate node-id warnings.

Keys are found with a line-oriented scan rather than a full YAML parse, so a
document that does not load still contributes whatever keys it spells out.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

from questflow.document import RESERVED_KEY

# Unindented ``key:`` or ``"key":`` / ``'key':`` at the start of a line.
TOP_LEVEL_KEY_RE = re.compile(r"""^["']?([\w\-.]+)["']?\s*:""", re.MULTILINE)


@dataclass(frozen=True)
class SourceDocument:
    """A document as the index sees it: a display name plus raw text."""

    name: str
    content: str


def extract_identifiers(text: str) -> list[str]:
    """Top-level keys of a conversation document, in order, without duplicates."""
    seen: dict[str, None] = {}
    for match in TOP_LEVEL_KEY_RE.finditer(text):
        key = match.group(1)
        if key != RESERVED_KEY:
            seen.setdefault(key, None)
    return list(seen)


class IdentifierIndex:
    """Maps identifier → names of the documents that define it."""

    def __init__(self, locations: dict[str, list[str]]) -> None:
        self.locations = locations

    def check_duplicate(self, identifier: str) -> list[str] | None:
        """Names of other documents defining ``identifier``, or ``None``."""
        names = self.locations.get(identifier)
        return list(names) if names else None

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.locations

    def __len__(self) -> int:
        return len(self.locations)


def build_identifier_index(
    documents: Mapping[str, SourceDocument | str],
    exclude: str | None = None,
) -> IdentifierIndex:
    """Index every document except ``exclude`` (a document id).

    ``documents`` maps document id → ``SourceDocument``, or → raw text, in
    which case the id doubles as the name.
    """
    locations: dict[str, list[str]] = {}
    for doc_id, doc in documents.items():
        if doc_id == exclude:
            continue
        if isinstance(doc, SourceDocument):
            name, content = doc.name, doc.content
        else:
            name, content = doc_id, doc
        for identifier in extract_identifiers(content):
            locations.setdefault(identifier, []).append(name)
    return IdentifierIndex(locations)
