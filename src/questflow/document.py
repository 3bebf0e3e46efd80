"""YAML document layer: text <-> ordered mapping of node key -> body."""

from __future__ import annotations

from typing import Any

import yaml

from questflow.errors import DocumentError

# Deprecated per-document metadata; skipped on read, never written.
RESERVED_KEY = "__option__"


def normalize_line_endings(value: Any) -> Any:
    """Recursively convert ``\\r\\n`` to ``\\n`` inside every string of ``value``."""
    if isinstance(value, str):
        return value.replace("\r\n", "\n")
    if isinstance(value, list):
        return [normalize_line_endings(v) for v in value]
    if isinstance(value, dict):
        return {k: normalize_line_endings(v) for k, v in value.items()}
    return value


def load_document(text: str) -> dict[str, Any]:
    """Parse YAML text into an ordered ``{key: body}`` mapping.

    An empty document yields an empty mapping. Keys are coerced to ``str``
    (YAML happily produces ints for keys such as ``1:``).

    Raises:
        DocumentError: the text is not valid YAML or its root is not a mapping.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise DocumentError(f"invalid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DocumentError(f"document root must be a mapping, got {type(data).__name__}")

    return {str(key): normalize_line_endings(body) for key, body in data.items()}


# ─── Dumping ──────────────────────────────────────────────────────────────────


class _DocumentDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_str(data)


_DocumentDumper.add_representer(str, _represent_str)


def dump_document(document: dict[str, Any]) -> str:
    """Serialize a ``{key: body}`` mapping to YAML, keeping insertion order."""
    return yaml.dump(
        normalize_line_endings(document),
        Dumper=_DocumentDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )
