from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
import logging

from .data_model import Point
from .events import (
    EventSource,
    DeleteRequested,
    PolygonCleared,
    PolygonClosed,
    PolygonLoaded,
    PolygonReopened,
    SelectionChanged,
    UndoApplied,
    VertexAdded,
    VertexDeleted,
    VertexDragged,
    VertexMoved,
)
from .geometry import distance, is_near, nearest_vertex_index
from .ui_state import PolygonInteractionState, PolygonSnapshot

logger = logging.getLogger(__name__)

VERTEX_RADIUS = 6
VERTEX_HIT_RADIUS = 6
CLOSE_HIT_RADIUS = 10
DRAG_THRESHOLD_PX = 2
MIN_CLOSED_VERTICES = 3


class PolygonEditor(EventSource):
    """
    Editing state machine for one leaf outline.

    The vertex list is open until a click lands near the first vertex with
    at least three vertices placed. Every structural edit (add, close,
    delete, a drag that moved) pushes exactly one snapshot for undo.

    Pointer sequence expected from the surface: pointer_down, any number of
    pointer_move, pointer_up, then click for the same press.
    """

    def __init__(self) -> None:
        super().__init__()
        self._vertices: List[Point] = []
        self._closed = False
        self._undo: List[PolygonSnapshot] = []
        self._ui = PolygonInteractionState()

    # ---------- getters ----------

    @property
    def vertices(self) -> Tuple[Point, ...]:
        return tuple(self._vertices)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def selected_index(self) -> Optional[int]:
        return self._ui.selected_index

    @property
    def is_dragging(self) -> bool:
        return self._ui.dragging

    @property
    def click_suppressed(self) -> bool:
        return self._ui.suppress_next_click

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    def snapshot(self) -> PolygonSnapshot:
        return PolygonSnapshot(vertices=tuple(self._vertices), closed=self._closed)

    def hit_vertex(self, pos: Point) -> Optional[int]:
        return nearest_vertex_index(self._vertices, pos, VERTEX_HIT_RADIUS)

    # ---------- wholesale state ----------

    def load(self, vertices: Sequence[Point], closed: bool) -> None:
        """Replace the polygon, dropping undo history and interaction state."""
        self._vertices = [Point(float(v.x), float(v.y)) for v in vertices]
        self._closed = bool(closed) and len(self._vertices) >= MIN_CLOSED_VERTICES
        self._undo.clear()
        self._ui.reset()
        self._publish(PolygonLoaded(self.vertices, self._closed))

    def clear(self) -> None:
        self._vertices = []
        self._closed = False
        self._undo.clear()
        self._ui.reset()
        self._publish(PolygonCleared())

    def cancel_interaction(self) -> None:
        """Abort an in-flight drag without committing it."""
        ui = self._ui
        if ui.dragging and ui.drag_index is not None and ui.drag_start_vertex is not None:
            if ui.drag_index < len(self._vertices):
                self._vertices[ui.drag_index] = ui.drag_start_vertex
        ui.reset()

    # ---------- clicks ----------

    def click(self, pos: Point) -> bool:
        """Add a vertex or close the polygon. Returns True when state changed."""
        if self._ui.suppress_next_click:
            self._ui.suppress_next_click = False
            return False
        if self._closed:
            return False

        n = len(self._vertices)
        if n >= MIN_CLOSED_VERTICES and is_near(pos, self._vertices[0], CLOSE_HIT_RADIUS):
            self._push_undo()
            self._closed = True
            self._set_selection(None)
            logger.debug("polygon closed with %d vertices", n)
            self._publish(PolygonClosed(self.vertices))
            return True

        if self.hit_vertex(pos) is not None:
            # press on an existing vertex selects it, never duplicates it
            return False

        self._push_undo()
        self._vertices.append(pos)
        self._publish(VertexAdded(len(self._vertices) - 1, pos))
        return True

    # ---------- drag ----------

    def pointer_down(self, pos: Point) -> Optional[int]:
        ui = self._ui
        ui.reset_drag()
        ui.suppress_next_click = False
        idx = self.hit_vertex(pos)
        self._set_selection(idx)
        if idx is None:
            return None
        ui.drag_index = idx
        ui.drag_origin = pos
        ui.drag_start_vertex = self._vertices[idx]
        ui.drag_snapshot = self.snapshot()
        return idx

    def pointer_move(self, pos: Point) -> bool:
        ui = self._ui
        if ui.drag_index is None or ui.drag_origin is None:
            return False
        if not ui.dragging:
            if distance(pos, ui.drag_origin) <= DRAG_THRESHOLD_PX:
                return False
            ui.dragging = True
        self._vertices[ui.drag_index] = pos
        self._publish(VertexDragged(ui.drag_index, pos))
        return True

    def pointer_up(self, pos: Optional[Point] = None) -> bool:
        """Finish a drag; True when a moved vertex was committed to history."""
        ui = self._ui
        if not ui.dragging or ui.drag_index is None:
            ui.reset_drag()
            return False
        idx = ui.drag_index
        old = ui.drag_start_vertex
        snap = ui.drag_snapshot
        new = self._vertices[idx]
        ui.reset_drag()
        ui.suppress_next_click = True
        if old is None or snap is None or new == old:
            return False
        self._undo.append(snap)
        self._publish(VertexMoved(idx, old, new))
        return True

    def pointer_leave(self) -> bool:
        if self._ui.dragging:
            return self.pointer_up()
        self._ui.reset_drag()
        return False

    # ---------- deletion ----------

    def delete_vertex(self, index: int) -> bool:
        """Remove a vertex; refused unless at least three remain afterwards."""
        if not (0 <= index < len(self._vertices)):
            return False
        if not len(self._vertices) > MIN_CLOSED_VERTICES:
            return False
        self._push_undo()
        removed = self._vertices.pop(index)
        self._ui.reset_drag()
        self._set_selection(None)
        self._publish(VertexDeleted(index, removed))
        return True

    def context_click(self, pos: Point) -> bool:
        idx = self.hit_vertex(pos)
        if idx is None:
            return False
        return self.delete_vertex(idx)

    def delete_key(self) -> bool:
        """Delete/Backspace: drop the selected vertex, else ask to delete the polygon."""
        if self._ui.selected_index is not None:
            return self.delete_vertex(self._ui.selected_index)
        if self._vertices:
            self.request_delete()
            return True
        return False

    def request_delete(self) -> None:
        self._publish(DeleteRequested())

    # ---------- undo ----------

    def undo(self) -> bool:
        if not self._undo:
            return False
        snap = self._undo.pop()
        was_closed = self._closed
        self._vertices = list(snap.vertices)
        self._closed = snap.closed
        self._ui.reset()
        self._publish(UndoApplied(snap.vertices, snap.closed))
        if was_closed and not self._closed:
            self._publish(PolygonReopened())
        elif self._closed and not was_closed:
            self._publish(PolygonClosed(self.vertices))
        return True

    # ---------- internals ----------

    def _push_undo(self) -> None:
        self._undo.append(self.snapshot())

    def _set_selection(self, idx: Optional[int]) -> None:
        if self._ui.selected_index != idx:
            self._ui.selected_index = idx
            self._publish(SelectionChanged(idx))
