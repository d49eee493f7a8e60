from __future__ import annotations

import tkinter as tk
from tkinter import ttk
from typing import Tuple

from PIL import Image, ImageTk

from .calibration import ENDPOINT_RADIUS
from .data_model import Point
from .polygon_tool import MIN_CLOSED_VERTICES, VERTEX_RADIUS


class CanvasPanel:
    def __init__(self, owner, parent: tk.Widget) -> None:
        self.owner = owner

        frame = ttk.Frame(parent)
        self.frame = frame
        frame.pack(side="top", fill="both", expand=True)

        owner.tip_var = tk.StringVar(value="")
        owner.tip_label = ttk.Label(frame, textvariable=owner.tip_var, wraplength=900, justify="left")
        owner.tip_label.pack(side="top", fill="x", pady=(8, 0))

        owner.canvas = tk.Canvas(frame, background="#111", highlightthickness=1, highlightbackground="#333")
        owner.canvas.configure(takefocus=1)
        owner.canvas.pack(side="bottom", fill="both", expand=True, pady=(8, 0))

    def bind_actor(self, actor) -> None:
        canvas = self.owner.canvas
        canvas.bind("<Configure>", actor._on_canvas_configure)
        canvas.bind("<Button-1>", actor._on_press)
        canvas.bind("<B1-Motion>", actor._on_drag)
        canvas.bind("<ButtonRelease-1>", actor._on_release)
        canvas.bind("<Motion>", actor._on_motion)
        canvas.bind("<Button-3>", actor._on_right_click)
        canvas.bind("<KeyPress>", actor._on_key_press)
        canvas.bind("<Leave>", actor._on_canvas_leave)


class CanvasActor:
    def __init__(self, owner) -> None:
        if not isinstance(getattr(owner, "canvas", None), tk.Canvas):
            raise RuntimeError("CanvasActor needs a Tk canvas to draw on")
        object.__setattr__(self, "owner", owner)

    def __getattr__(self, name):
        return getattr(self.owner, name)

    def __setattr__(self, name, value) -> None:
        if name == "owner":
            object.__setattr__(self, name, value)
            return
        setattr(self.owner, name, value)

    def _on_canvas_configure(self, _evt=None):
        # Avoid thrashing when resizing: schedule a single re-render
        if getattr(self, "_render_after_id", None) is not None:
            try:
                self.after_cancel(self._render_after_id)
            except tk.TclError:
                pass
        self._render_after_id = self.after(30, self._render_image)

    def _render_image(self):
        self._render_after_id = None
        self.canvas.delete("all")
        self.canvas.update_idletasks()
        cw = max(10, self.canvas.winfo_width())
        ch = max(10, self.canvas.winfo_height())

        sx = cw / self._iw
        sy = ch / self._ih
        if self.var_fit_image.get():
            self._scale = min(sx, sy)
        else:
            self._scale = min(1.0, sx, sy)
        disp_w = max(1, int(self._iw * self._scale))
        disp_h = max(1, int(self._ih * self._scale))

        self._offx = (cw - disp_w)//2
        self._offy = (ch - disp_h)//2

        disp = self._pil.resize((disp_w, disp_h), Image.BILINEAR)
        self._photo = ImageTk.PhotoImage(disp)
        self.canvas.create_image(self._offx, self._offy, image=self._photo, anchor="nw", tags=("img",))

        self._redraw_overlay()

    # ---------- coordinates ----------

    def _to_canvas(self, xpx: float, ypx: float) -> Tuple[float, float]:
        return self._offx + xpx * self._scale, self._offy + ypx * self._scale

    def _to_image_px(self, cx: float, cy: float) -> Point:
        x = (cx - self._offx) / self._scale
        y = (cy - self._offy) / self._scale
        x = max(0.0, min(float(self._iw - 1), x))
        y = max(0.0, min(float(self._ih - 1), y))
        return Point(x, y)

    def _event_point(self, event) -> Point:
        return self._to_image_px(self.canvas.canvasx(event.x), self.canvas.canvasy(event.y))

    # ---------- overlay ----------

    def _redraw_overlay(self):
        self.canvas.delete("overlay")
        session = self.session
        if session.is_closed:
            return

        grid = session.grid
        if grid.is_visible:
            for cell in grid.cells:
                x0, y0 = self._to_canvas(cell.x, cell.y)
                x1, y1 = self._to_canvas(cell.x + cell.width, cell.y + cell.height)
                self.canvas.create_rectangle(x0, y0, x1, y1, outline="#3FA34D", width=1,
                                             tags=("overlay", "grid"))

        for leaf in session.leaves:
            if leaf.label == session.active_label or not leaf.vertices:
                continue
            self._draw_outline(leaf.vertices, leaf.closed, color="#9AA5B1", width=1)
            lx, ly = self._to_canvas(leaf.vertices[0].x, leaf.vertices[0].y)
            self.canvas.create_text(lx + 8, ly - 8, text=leaf.label, fill="#9AA5B1",
                                    anchor="sw", tags=("overlay", "leaf_label"))

        self._draw_active_polygon()
        self._draw_scale_line()

    def _draw_outline(self, vertices, closed: bool, *, color: str, width: int):
        pts = [self._to_canvas(v.x, v.y) for v in vertices]
        if closed:
            pts = pts + [pts[0]]
        if len(pts) < 2:
            return
        flat = [c for xy in pts for c in xy]
        # halo, then stroke
        self.canvas.create_line(*flat, fill="black", width=width + 3,
                                capstyle="round", joinstyle="round", tags=("overlay", "outline"))
        self.canvas.create_line(*flat, fill=color, width=width,
                                capstyle="round", joinstyle="round", tags=("overlay", "outline"))

    def _draw_active_polygon(self):
        editor = self.session.editor
        vertices = editor.vertices
        if not vertices:
            return
        self._draw_outline(vertices, editor.closed, color="#00E5FF", width=2)

        selected = editor.selected_index
        r = VERTEX_RADIUS
        for i, v in enumerate(vertices):
            cx, cy = self._to_canvas(v.x, v.y)
            if i == selected:
                fill = "#FFD400"
            elif i == 0 and not editor.closed and len(vertices) >= MIN_CLOSED_VERTICES:
                fill = "#2ECC71"  # click here to close
            else:
                fill = "white"
            self.canvas.create_oval(cx - r, cy - r, cx + r, cy + r, fill=fill, outline="black",
                                    width=1, tags=("overlay", "vertex", f"v_{i}"))

        label = self.session.active_label
        if label is not None:
            lx, ly = self._to_canvas(vertices[0].x, vertices[0].y)
            self.canvas.create_text(lx + 8, ly - 8, text=label, fill="#00E5FF",
                                    anchor="sw", tags=("overlay", "leaf_label"))

    def _draw_scale_line(self):
        line = self.session.scale_line
        if line is None:
            return
        x0, y0 = self._to_canvas(line.start.x, line.start.y)
        x1, y1 = self._to_canvas(line.end.x, line.end.y)
        dash = () if line.is_complete else (6, 4)
        self.canvas.create_line(x0, y0, x1, y1, fill="black", width=4, dash=dash, tags=("overlay", "scale"))
        self.canvas.create_line(x0, y0, x1, y1, fill="#F39C12", width=2, dash=dash, tags=("overlay", "scale"))
        if not line.is_complete:
            return
        r = ENDPOINT_RADIUS
        for cx, cy in ((x0, y0), (x1, y1)):
            self.canvas.create_oval(cx - r, cy - r, cx + r, cy + r, outline="#F39C12", width=2,
                                    fill="", tags=("overlay", "scale_handle"))
        self.canvas.create_text((x0 + x1) / 2, (y0 + y1) / 2 - 10, text=f"{line.length:.0f} px",
                                fill="#F39C12", anchor="s", tags=("overlay", "scale"))

    # ---------- pointer ----------

    def _on_press(self, event):
        self.canvas.focus_set()
        p = self._event_point(event)
        if self.tool_mode.get() == "scale":
            self.session.scale_tool.pointer_down(p)
        else:
            self.session.editor.pointer_down(p)
        self._redraw_overlay()

    def _on_drag(self, event):
        p = self._event_point(event)
        if self.tool_mode.get() == "scale":
            self.session.scale_tool.pointer_move(p)
            self.owner.calibrator._refresh_scale_ui()
        else:
            self.session.editor.pointer_move(p)
        self._redraw_overlay()

    def _on_release(self, event):
        p = self._event_point(event)
        if self.tool_mode.get() == "scale":
            self.session.scale_tool.pointer_up(p)
            self.owner.calibrator._refresh_scale_ui()
        else:
            # Tk has no separate click event: release ends a drag, then counts as the click
            self.session.editor.pointer_up(p)
            self.session.click(p)
        self._redraw_overlay()

    def _on_motion(self, event):
        p = self._event_point(event)
        if self.tool_mode.get() == "scale":
            over = self.session.scale_tool.hit_endpoint(p) is not None
        else:
            over = self.session.editor.hit_vertex(p) is not None
        self.canvas.configure(cursor=("fleur" if over else "crosshair"))

    def _on_right_click(self, event):
        if self.tool_mode.get() != "polygon":
            return
        p = self._event_point(event)
        if not self.session.editor.context_click(p) and self.session.editor.hit_vertex(p) is not None:
            self.set_status("An outline needs at least 3 vertices.")
        self._redraw_overlay()

    def _on_canvas_leave(self, _event):
        self.session.scale_tool.pointer_leave()
        self.session.editor.pointer_leave()
        self.owner.calibrator._refresh_scale_ui()
        self._redraw_overlay()

    def _on_key_press(self, event):
        if event.keysym in ("Delete", "BackSpace"):
            if self.tool_mode.get() == "polygon":
                self.session.delete_key()
                self._redraw_overlay()
            return "break"
        if event.keysym == "Escape":
            self.session.scale_tool.cancel()
            self.session.editor.cancel_interaction()
            self.owner.calibrator._refresh_scale_ui()
            self._redraw_overlay()
            return "break"

    def _update_tip(self):
        mode = self.tool_mode.get()
        if mode == "scale":
            msg = (
                "Scale line: drag along the ruler to draw a line, or drag an endpoint to adjust it. "
                "Then enter the real length in cm and press Confirm."
            )
        else:
            msg = (
                "Leaf outline: click to place vertices; click the green first vertex to close. "
                "Drag a vertex to move it, right-click or Delete to remove it. "
                "Ctrl+Z undoes. Click inside another closed leaf to switch to it."
            )
        self.tip_var.set(msg)
