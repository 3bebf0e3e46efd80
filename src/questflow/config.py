"""Layout configuration.

All pixel constants used by the layout engine live on ``LayoutConfig``. The
defaults reproduce the canvas geometry the editor has always used; callers
pass their own instance to ``questflow.layout.layout`` to change it.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LayoutConfig:
    """Geometry for the left-to-right layered layout.

    Attributes:
        node_width: Width reserved for every node column.
        rank_gap: Horizontal gap between two adjacent ranks (columns).
        node_gap: Vertical gap between two nodes stacked in the same rank.
        left_margin: x of rank 0.
        vertical_anchor: y each column is centered around.
        header_height: Fixed header block of every node.
        padding_height: Fixed bottom padding of every node.
        line_height: Height added per dialogue line.
        option_height: Height added per player option.
        branch_height: Height added per switch branch.
        max_rank_depth: Rank propagation stops past this depth (cycle bound).
        unranked_weight: Barycenter weight for nodes with no placed parent.
    """

    node_width: int = 320
    rank_gap: int = 100
    node_gap: int = 50
    left_margin: int = 100
    vertical_anchor: int = 100
    header_height: int = 50
    padding_height: int = 20
    line_height: int = 30
    option_height: int = 40
    branch_height: int = 40
    max_rank_depth: int = 50
    unranked_weight: float = 9999.0

    @property
    def column_stride(self) -> int:
        """Distance between the left edges of two adjacent columns."""
        return self.node_width + self.rank_gap


DEFAULT_LAYOUT_CONFIG = LayoutConfig()
