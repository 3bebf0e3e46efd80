"""Exception types raised inside questflow.

``parse`` and ``generate`` never let these escape; they surface from the
lower-level helpers (``load_document``) and from the graph edit operations.
"""

from __future__ import annotations


class QuestflowError(Exception):
    """Base class for every error raised by this package."""


class DocumentError(QuestflowError):
    """The text is not valid YAML or its root is not a mapping."""


class GraphEditError(QuestflowError):
    """An edit referred to a node or handle that does not exist."""
