from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox
from typing import Callable, Optional
import logging
import platform

from PIL import Image

from .events import (
    DeleteRequested,
    GridChanged,
    LeafActivated,
    LeavesChanged,
    PersistenceFailed,
    PolygonClosed,
    VertexAdded,
    VertexDeleted,
    VertexMoved,
)
from .persistence import PersistenceAdapter
from .session import EditorSession
from .ui_panel_calibration import CalibrationPanel, Calibrator
from .ui_panel_canvas import CanvasActor, CanvasPanel
from .ui_panel_leaves import LeafActor, LeavesPanel
from .ui_panel_toolbar import ToolbarPanel

logger = logging.getLogger(__name__)


class AnnotatorWindow(tk.Toplevel):
    """
    One image open for scale calibration and leaf outlining.

    Writes go through the adapter on after_idle so pointer handling never
    waits on the store. Closing the window tears the session down.
    """

    def __init__(
        self,
        parent: tk.Tk,
        *,
        api,
        image: dict,
        grid_size_mm: float,
        show_grid: bool,
        on_grid_settings: Optional[Callable[[float, bool], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
    ):
        with Image.open(image["filepath"]) as im:
            pil = im.convert("RGB")

        super().__init__(parent)
        self.title(f"Herbivory Counter - {image['filename']}")
        self.geometry("1180x760")
        self.resizable(True, True)
        if platform.system().lower() != "windows":
            self.transient(parent)  # modeless: no grab_set
        self._on_grid_settings = on_grid_settings
        self._on_close = on_close
        self.image_record = image

        self._pil = pil
        self._iw, self._ih = self._pil.size

        # scheduled on the app root so writes still land after this window is gone
        adapter = PersistenceAdapter(api, schedule=parent.after_idle)
        self.session = EditorSession(
            int(image["id"]),
            adapter,
            grid_size_mm=grid_size_mm,
            show_grid=show_grid,
        )

        self.tool_mode = tk.StringVar(value="scale")
        self.var_fit_image = tk.BooleanVar(value=True)
        self.var_line_length = tk.StringVar(value="-")
        self.var_cm_value = tk.StringVar(value="")
        self.var_px_per_cm = tk.StringVar(value="not calibrated")
        self.var_grid_size = tk.StringVar(value=f"{grid_size_mm:g}")
        self.var_show_grid = tk.BooleanVar(value=show_grid)
        self.var_completed = tk.BooleanVar(value=bool(image.get("completed")))
        self.status_var = tk.StringVar(value="Ready.")

        self.calibrator = Calibrator(self)
        self.leaf_actor = LeafActor(self)

        self._build_ui()

        self.session.subscribe(self._on_session_event)
        self.session.open()
        if self.session.scale_value is None:
            self.tool_mode.set("scale")
        else:
            self.tool_mode.set("polygon")

        self.calibrator._refresh_scale_ui()
        self.leaf_actor._refresh_leaf_list()
        self.canvas_actor._update_tip()
        self.canvas_actor._render_image()

        self.bind("<Control-z>", self._on_undo)
        self.bind("<Control-Z>", self._on_undo)
        self.protocol("WM_DELETE_WINDOW", self.close)

    # ---------- UI ----------
    def _build_ui(self):
        root = ttk.Frame(self, padding=8)
        root.pack(fill="both", expand=True)

        footer = ttk.Frame(root)
        footer.pack(side="bottom", fill="x", pady=(6, 0))
        ttk.Label(footer, textvariable=self.status_var).pack(side="left")

        self._panes = ttk.Panedwindow(root, orient="horizontal")
        self._panes.pack(fill="both", expand=True)

        left = ttk.Frame(self._panes)
        right = ttk.Frame(self._panes, width=320)
        self._panes.add(left, weight=3)
        self._panes.add(right, weight=1)

        self.toolbar_panel = ToolbarPanel(
            self,
            left,
            on_tool_change=self._on_tool_change,
            on_undo=self._on_undo,
            on_clear=self._on_clear_outline,
            on_fit_toggle=self._on_fit_toggle,
        )

        self.canvas_panel = CanvasPanel(self, left)
        self.canvas_actor = CanvasActor(self)
        self.canvas_panel.bind_actor(self.canvas_actor)

        self.calibration_panel = CalibrationPanel(
            self,
            right,
            on_confirm=self.calibrator._confirm_scale,
            on_clear=self.calibrator._clear_scale,
        )
        self.leaves_panel = LeavesPanel(
            self,
            right,
            on_select=self.leaf_actor._on_tree_select,
            on_new=self.leaf_actor._new_leaf,
            on_delete=self.leaf_actor._delete_leaf,
            on_grid_size=self.leaf_actor._apply_grid_size,
            on_grid_toggle=self.leaf_actor._on_grid_toggle,
            on_completed_toggle=self.leaf_actor._on_completed_toggle,
        )

    def set_status(self, msg: str):
        self.status_var.set(msg)

    # ---------- session events ----------

    def _on_session_event(self, event):
        if isinstance(event, DeleteRequested):
            # confirm outside the editor's publish loop
            self.after_idle(lambda label=event.leaf_label: self.leaf_actor._confirm_delete(label))
        elif isinstance(event, PersistenceFailed):
            self.set_status(f"Not saved ({event.procedure}): {event.error}")
        elif isinstance(event, PolygonClosed):
            if self.session.synced:
                self.set_status(f"Leaf {self.session.active_label} closed and saved.")
            else:
                self.set_status(f"Leaf {self.session.active_label} closed (not saved: stored data unreadable).")
            self.leaf_actor._refresh_leaf_list()
        elif isinstance(event, GridChanged):
            if not event.transient:
                self.leaf_actor._refresh_leaf_list()
        elif isinstance(event, (LeafActivated, LeavesChanged, VertexAdded, VertexMoved, VertexDeleted)):
            self.leaf_actor._refresh_leaf_list()

    def _on_tool_change(self):
        self.session.scale_tool.cancel()
        self.session.editor.cancel_interaction()
        self.canvas_actor._update_tip()
        self.canvas_actor._redraw_overlay()

    def _on_undo(self, _evt=None):
        if self.session.undo():
            self.leaf_actor._refresh_leaf_list()
            self.canvas_actor._redraw_overlay()
        return "break"

    def _on_clear_outline(self):
        editor = self.session.editor
        if not editor.vertices:
            return
        if not messagebox.askyesno("Clear outline", "Remove all vertices of this leaf?", parent=self):
            return
        self.session.clear_polygon()
        self.leaf_actor._refresh_leaf_list()
        self.canvas_actor._redraw_overlay()

    def _on_fit_toggle(self):
        self.canvas_actor._render_image()

    def on_grid_settings_changed(self, grid_size_mm: float, show_grid: bool):
        self.leaf_actor._refresh_leaf_list()
        self.canvas_actor._redraw_overlay()
        if self._on_grid_settings is not None:
            self._on_grid_settings(grid_size_mm, show_grid)

    def close(self):
        self.session.close()
        logger.info("closed image %s", self.image_record["filename"])
        if self._on_close is not None:
            self._on_close()
        self.destroy()
