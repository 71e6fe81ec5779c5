"""Graph layout: canonical order <-> editing projection."""

from workflows.services.layout.row_layout_engine import LayoutConfig, RowLayoutEngine

__all__ = [
    "LayoutConfig",
    "RowLayoutEngine",
]
