from __future__ import annotations

from typing import List, Optional
import logging

from .calibration import (
    ScaleLine,
    ScaleTool,
    ScaleValue,
    compute_scale_value,
    restore_from_scale_data,
    scale_data_from,
)
from .data_model import Leaf, Point
from .events import (
    EventSource,
    DeleteRequested,
    GridChanged,
    LeafActivated,
    LeavesChanged,
    PersistenceFailed,
    PolygonCleared,
    PolygonClosed,
    PolygonLoaded,
    PolygonReopened,
    ScaleChanged,
    UndoApplied,
    VertexAdded,
    VertexDeleted,
    VertexDragged,
    VertexMoved,
)
from .geometry import is_point_in_polygon
from .grid import (
    DEFAULT_GRID_SIZE_MM,
    GridState,
    build_grid_state,
    create_grid_state,
    get_default_grid_size_mm,
    validate_grid_size,
)
from .persistence import PersistenceAdapter, PersistenceError
from .polygon_tool import MIN_CLOSED_VERTICES, PolygonEditor

logger = logging.getLogger(__name__)


class EditorSession(EventSource):
    """
    Everything editable about one open image.

    Owns the scale tool, the polygon editor (bound to the active leaf), the
    leaf list, the confirmed scale and the derived grid. Lives from open()
    until close(); the session installs itself as the adapter's error sink.
    """

    def __init__(
        self,
        image_id: int,
        adapter: PersistenceAdapter,
        *,
        grid_size_mm: float = DEFAULT_GRID_SIZE_MM,
        show_grid: bool = True,
    ) -> None:
        super().__init__()
        self.image_id = image_id
        self.adapter = adapter
        adapter.on_error = self._on_persistence_error

        self.scale_tool = ScaleTool(on_line_complete=self._on_line_complete)
        self.editor = PolygonEditor()
        self._editor_unsubscribe = self.editor.subscribe(self._on_editor_event)
        self._editor_closed = False

        self._leaves: List[Leaf] = []
        self.active_label: Optional[str] = None
        self.pending_delete: Optional[str] = None

        self.scale_value: Optional[ScaleValue] = None
        self.grid_size_mm = grid_size_mm
        self.show_grid = show_grid
        self.grid: GridState = create_grid_state(grid_size_mm)
        self.is_closed = False
        # false until open() has read the store; nothing is written while false
        self.synced = False
        self._stored_labels = set()

    # ---------- lifecycle ----------

    def open(self) -> None:
        """
        Restore persisted scale and leaves; reads complete before this returns.

        If the store cannot be read the session opens unsynced: editing
        still works but no write is issued, so an unread leaf is never
        overwritten. Calling open() again retries the restore.
        """
        data, stored = None, []
        try:
            data = self.adapter.get_scale(self.image_id)
            stored = self.adapter.get_polygons(self.image_id)
        except PersistenceError as e:
            self.synced = False
            logger.warning("image %s could not be restored, edits will not be saved: %s",
                           self.image_id, e)
        else:
            self.synced = True

        if data is not None:
            line, value = restore_from_scale_data(data)
            self.scale_tool.set_line(line)
            self.scale_value = value
        else:
            self.scale_tool.clear_line()
            self.scale_value = None

        self._leaves = [
            Leaf(
                label=sp.leaf_id,
                vertices=list(sp.vertices),
                closed=len(sp.vertices) >= MIN_CLOSED_VERTICES,
                polygon_id=sp.id,
            )
            for sp in stored
        ]
        self._stored_labels = {l.label for l in self._leaves}
        if not self._leaves:
            self._leaves.append(Leaf(label=self.next_leaf_label()))
        self.active_label = None
        self._activate(self._leaves[0].label)
        logger.info("image %s opened: %d leaves, scale %s",
                    self.image_id, len(self._leaves),
                    f"{self.scale_value.px_per_cm:.3f} px/cm" if self.scale_value else "unset")
        self._publish(ScaleChanged(self.px_per_cm))
        self._publish(LeavesChanged(self.leaf_labels))

    def close(self) -> None:
        """Tear down: drop provisional interaction state without persisting it."""
        if self.is_closed:
            return
        self.scale_tool.cancel()
        self.editor.cancel_interaction()
        self._flush_active()
        self._editor_unsubscribe()
        self.unsubscribe_all()
        self.is_closed = True

    # ---------- leaves ----------

    @property
    def leaves(self) -> List[Leaf]:
        self._flush_active()
        return list(self._leaves)

    @property
    def leaf_labels(self):
        return tuple(l.label for l in self._leaves)

    @property
    def active_leaf(self) -> Optional[Leaf]:
        return self._find_leaf(self.active_label)

    def _find_leaf(self, label: Optional[str]) -> Optional[Leaf]:
        for leaf in self._leaves:
            if leaf.label == label:
                return leaf
        return None

    def next_leaf_label(self) -> str:
        nums = [int(l.label) for l in self._leaves if l.label.isdigit()]
        return f"{max(nums, default=0) + 1:02d}"

    def _flush_active(self) -> None:
        leaf = self.active_leaf
        if leaf is not None:
            leaf.vertices = list(self.editor.vertices)
            leaf.closed = self.editor.closed

    def _activate(self, label: str) -> None:
        self.editor.cancel_interaction()
        self._flush_active()
        current = self.active_leaf
        dropped = (
            current is not None
            and current.label != label
            and not current.vertices
            and current.label not in self._stored_labels
        )
        if dropped:
            # empty leaves that were never stored are not kept
            self._leaves.remove(current)
        leaf = self._find_leaf(label)
        self.active_label = label
        self.editor.load(leaf.vertices, leaf.closed)
        self._publish(LeafActivated(label))
        if dropped:
            self._publish(LeavesChanged(self.leaf_labels))

    def select_leaf(self, label: str) -> bool:
        if self.is_closed or self._find_leaf(label) is None:
            return False
        if label != self.active_label:
            self._activate(label)
        return True

    def new_leaf(self) -> Optional[str]:
        """Start the next leaf; only once the active outline is closed."""
        if self.is_closed or not self.editor.closed:
            return None
        label = self.next_leaf_label()
        self._flush_active()
        self._leaves.append(Leaf(label=label))
        self._activate(label)
        self._publish(LeavesChanged(self.leaf_labels))
        return label

    def leaf_at(self, p: Point, *, include_active: bool = True) -> Optional[str]:
        self._flush_active()
        for leaf in self._leaves:
            if not include_active and leaf.label == self.active_label:
                continue
            if leaf.closed and is_point_in_polygon(p, leaf.vertices):
                return leaf.label
        return None

    # ---------- polygon input ----------

    def click(self, p: Point) -> bool:
        if self.is_closed:
            return False
        idle = self.editor.closed or not self.editor.vertices
        if idle and not self.editor.click_suppressed:
            other = self.leaf_at(p, include_active=False)
            if other is not None:
                return self.select_leaf(other)
        return self.editor.click(p)

    def undo(self) -> bool:
        return False if self.is_closed else self.editor.undo()

    def delete_key(self) -> bool:
        return False if self.is_closed else self.editor.delete_key()

    def clear_polygon(self) -> None:
        if not self.is_closed:
            self.editor.clear()

    # ---------- deletion (request -> confirm) ----------

    def request_delete_polygon(self) -> bool:
        if self.is_closed or self.active_label is None:
            return False
        self.pending_delete = self.active_label
        self._publish(DeleteRequested(self.active_label))
        return True

    def cancel_delete_polygon(self) -> None:
        self.pending_delete = None

    def confirm_delete_polygon(self) -> bool:
        label = self.pending_delete
        self.pending_delete = None
        if self.is_closed or label is None:
            return False
        leaf = self._find_leaf(label)
        if leaf is None:
            return False
        if label == self.active_label:
            self.editor.cancel_interaction()

        polygon_id = leaf.polygon_id
        if self._writable("polygon:delete"):
            if polygon_id is None:
                polygon_id = self._stored_id_for(label)
            if polygon_id is not None:
                self.adapter.delete_polygon(polygon_id)
        logger.info("leaf %s deleted (polygon id %s)", label, polygon_id)

        self._leaves.remove(leaf)
        self._stored_labels.discard(label)
        if label == self.active_label:
            self.active_label = None
            if not self._leaves:
                self._leaves.append(Leaf(label=self.next_leaf_label()))
            self._activate(self._leaves[0].label)
        self._publish(LeavesChanged(self.leaf_labels))
        return True

    def _stored_id_for(self, label: str) -> Optional[int]:
        # reopened leaves forget their id; the stored row is still keyed by label
        try:
            stored = self.adapter.get_polygons(self.image_id)
        except PersistenceError:
            return None
        for sp in stored:
            if sp.leaf_id == label:
                return sp.id
        return None

    # ---------- scale ----------

    @property
    def px_per_cm(self) -> Optional[float]:
        return self.scale_value.px_per_cm if self.scale_value is not None else None

    @property
    def scale_line(self) -> Optional[ScaleLine]:
        return self.scale_tool.line

    def _on_line_complete(self, line: ScaleLine) -> None:
        self._publish(ScaleChanged(self.px_per_cm))

    def confirm_scale(self, cm_value) -> ScaleValue:
        """Calibrate from the drawn line; raises ScaleValueError and changes nothing on bad input."""
        line = self.scale_tool.line
        value = compute_scale_value(line, cm_value)
        self.scale_value = value
        if self._writable("image:saveScale"):
            self.adapter.save_scale(self.image_id, scale_data_from(line, value))
        logger.info("scale set: %.1f px = %g cm -> %.4f px/cm",
                    value.line_length, value.cm_value, value.px_per_cm)
        self.refresh_grid()
        self._publish(ScaleChanged(value.px_per_cm))
        return value

    def clear_scale(self) -> None:
        if self.is_closed:
            return
        self.scale_tool.clear_line()
        self.scale_value = None
        if self._writable("image:clearScale"):
            self.adapter.clear_scale(self.image_id)
        self.refresh_grid()
        self._publish(ScaleChanged(None))

    # ---------- grid ----------

    def set_grid_size(self, grid_size_mm) -> None:
        if not validate_grid_size(grid_size_mm):
            # an invalid size falls back to the default before the error is raised
            self.grid_size_mm = get_default_grid_size_mm()
            self.refresh_grid()
            raise ValueError(f"Grid size must be between 0.1 and 100 mm, got {grid_size_mm!r}")
        self.grid_size_mm = float(grid_size_mm)
        self.refresh_grid()

    def set_grid_visible(self, visible: bool) -> None:
        self.show_grid = bool(visible)
        self.refresh_grid()

    def refresh_grid(self, *, transient: bool = False) -> GridState:
        self.grid = build_grid_state(
            self.editor.vertices,
            self.editor.closed,
            self.px_per_cm or 0.0,
            self.grid_size_mm,
            visible=self.show_grid,
        )
        self._publish(GridChanged(len(self.grid.cells), self.grid.is_visible, transient))
        return self.grid

    # ---------- image flags ----------

    def set_completed(self, completed: bool) -> None:
        if self._writable("image:markCompleted"):
            self.adapter.mark_completed(self.image_id, completed)

    # ---------- persistence ----------

    def _writable(self, procedure: str) -> bool:
        """False once closed; while unsynced the refusal is reported as a failed save."""
        if self.is_closed:
            return False
        if not self.synced:
            logger.warning("%s skipped for image %s: stored data was never read",
                           procedure, self.image_id)
            self._publish(PersistenceFailed(procedure, "Stored data could not be read; reopen the image"))
            return False
        return True

    def _persist_active(self) -> None:
        leaf = self.active_leaf
        if leaf is None or not self.editor.closed:
            return
        if not self._writable("polygon:upsert"):
            return
        label = leaf.label

        def _saved(polygon_id: int) -> None:
            saved_leaf = self._find_leaf(label)
            if saved_leaf is None:
                return
            still_closed = self.editor.closed if label == self.active_label else saved_leaf.closed
            self._stored_labels.add(label)
            if still_closed:
                saved_leaf.polygon_id = polygon_id

        self.adapter.upsert_polygon(self.image_id, label, self.editor.vertices, on_saved=_saved)

    def _on_persistence_error(self, procedure: str, error: str) -> None:
        self._publish(PersistenceFailed(procedure, error))

    def _on_editor_event(self, event) -> None:
        if isinstance(event, DeleteRequested):
            self.request_delete_polygon()
            return

        if isinstance(event, PolygonClosed):
            self._persist_active()
        elif isinstance(event, PolygonReopened):
            leaf = self.active_leaf
            if leaf is not None:
                leaf.polygon_id = None
        elif isinstance(event, PolygonCleared):
            leaf = self.active_leaf
            if leaf is not None:
                leaf.polygon_id = None
        elif isinstance(event, (VertexMoved, VertexDeleted)):
            if self.editor.closed:
                self._persist_active()
        elif isinstance(event, UndoApplied):
            # an undone edit on a polygon that stays closed is an update
            if event.closed and self._editor_closed:
                self._persist_active()

        if isinstance(event, PolygonClosed):
            self._editor_closed = True
        elif isinstance(event, (PolygonReopened, PolygonCleared)):
            self._editor_closed = False
        elif isinstance(event, PolygonLoaded):
            self._editor_closed = event.closed

        if isinstance(event, (PolygonClosed, PolygonReopened, PolygonCleared, PolygonLoaded,
                              VertexAdded, VertexMoved, VertexDeleted, VertexDragged, UndoApplied)):
            self.refresh_grid(transient=isinstance(event, VertexDragged))
        self._publish(event)
