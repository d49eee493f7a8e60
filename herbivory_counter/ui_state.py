from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .data_model import Point


@dataclass(frozen=True)
class PolygonSnapshot:
    # immutable copy of the editable state, one per undo entry
    vertices: Tuple[Point, ...]
    closed: bool


@dataclass
class PolygonInteractionState:
    selected_index: Optional[int] = None

    # drag candidate armed on pointer-down over a vertex
    drag_index: Optional[int] = None
    drag_origin: Optional[Point] = None        # pointer-down position
    drag_start_vertex: Optional[Point] = None  # vertex position before the drag
    drag_snapshot: Optional[PolygonSnapshot] = None
    dragging: bool = False

    # set after a committed drag so the trailing click does not add a vertex
    suppress_next_click: bool = False

    def reset(self) -> None:
        self.selected_index = None
        self.reset_drag()
        self.suppress_next_click = False

    def reset_drag(self) -> None:
        self.drag_index = None
        self.drag_origin = None
        self.drag_start_vertex = None
        self.drag_snapshot = None
        self.dragging = False


@dataclass
class ScaleDrawState:
    drawing: bool = False
    draw_start: Optional[Point] = None

    def reset(self) -> None:
        self.drawing = False
        self.draw_start = None
