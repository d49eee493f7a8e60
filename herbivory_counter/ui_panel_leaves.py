from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox
from typing import Callable

from .grid import MAX_GRID_SIZE_MM, MIN_GRID_SIZE_MM, get_default_grid_size_mm


class LeavesPanel:
    def __init__(
        self,
        owner,
        parent: tk.Widget,
        *,
        on_select: Callable[[object], None],
        on_new: Callable[[], None],
        on_delete: Callable[[], None],
        on_grid_size: Callable[[], None],
        on_grid_toggle: Callable[[], None],
        on_completed_toggle: Callable[[], None],
    ) -> None:
        self.owner = owner
        frame = ttk.LabelFrame(parent, text="Leaves", padding=8)
        self.frame = frame
        frame.pack(side="top", fill="both", expand=True, pady=(8, 0))

        owner.tree = ttk.Treeview(
            frame,
            columns=("label", "state", "n", "cells"),
            show="headings",
            selectmode="browse",
            height=8,
        )
        owner.tree.heading("label", text="Leaf")
        owner.tree.heading("state", text="State")
        owner.tree.heading("n", text="Pts")
        owner.tree.heading("cells", text="Cells")
        owner.tree.column("label", width=50, anchor="w")
        owner.tree.column("state", width=70, anchor="center")
        owner.tree.column("n", width=50, anchor="e")
        owner.tree.column("cells", width=60, anchor="e")

        # packed bottom-up so the tree takes what is left
        done_row = ttk.Frame(frame)
        done_row.pack(side="bottom", fill="x", pady=(8, 0))
        ttk.Checkbutton(
            done_row,
            text="Image completed",
            variable=owner.var_completed,
            command=on_completed_toggle,
        ).pack(side="left")

        grid_row = ttk.Frame(frame)
        grid_row.pack(side="bottom", fill="x", pady=(8, 0))
        ttk.Label(grid_row, text="Grid (mm):").pack(side="left")
        owner.ent_grid_size = ttk.Entry(grid_row, textvariable=owner.var_grid_size, width=6)
        owner.ent_grid_size.pack(side="left", padx=(6, 0))
        owner.ent_grid_size.bind("<Return>", lambda _e: on_grid_size())
        ttk.Button(grid_row, text="Apply", command=on_grid_size).pack(side="left", padx=(6, 0))
        ttk.Checkbutton(
            grid_row,
            text="Show grid",
            variable=owner.var_show_grid,
            command=on_grid_toggle,
        ).pack(side="left", padx=(10, 0))

        btns = ttk.Frame(frame)
        btns.pack(side="bottom", fill="x", pady=(8, 0))
        owner.btn_new_leaf = ttk.Button(btns, text="New leaf", command=on_new)
        owner.btn_new_leaf.pack(side="left")
        ttk.Button(btns, text="Delete leaf", command=on_delete).pack(side="left", padx=(8, 0))

        owner.tree.pack(side="top", fill="both", expand=True)
        owner.tree.bind("<<TreeviewSelect>>", on_select)


class LeafActor:
    def __init__(self, owner) -> None:
        object.__setattr__(self, "owner", owner)

    def __getattr__(self, name):
        return getattr(self.owner, name)

    def __setattr__(self, name, value) -> None:
        if name == "owner":
            object.__setattr__(self, name, value)
            return
        setattr(self.owner, name, value)

    def _refresh_leaf_list(self):
        self._suppress_tree_select = True
        try:
            for item in self.tree.get_children(""):
                self.tree.delete(item)
            active = self.session.active_label
            for leaf in self.session.leaves:
                cells = len(self.session.grid.cells) if leaf.label == active else ""
                self.tree.insert(
                    "",
                    "end",
                    iid=leaf.label,
                    values=(leaf.label, "closed" if leaf.closed else "open", len(leaf.vertices), cells),
                )
            if active is not None and self.tree.exists(active):
                self.tree.selection_set(active)
                self.tree.see(active)
        finally:
            self._suppress_tree_select = False
        self.btn_new_leaf.configure(state=("normal" if self.session.editor.closed else "disabled"))

    def _on_tree_select(self, _evt=None):
        if getattr(self, "_suppress_tree_select", False):
            return
        sel = self.tree.selection()
        if not sel:
            return
        if self.session.select_leaf(sel[0]):
            self.owner.canvas_actor._redraw_overlay()

    def _new_leaf(self):
        label = self.session.new_leaf()
        if label is None:
            self.set_status("Close the current outline before starting a new leaf.")
            return
        self.set_status(f"Leaf {label}: click to place vertices.")

    def _delete_leaf(self):
        self.session.request_delete_polygon()

    def _confirm_delete(self, label: str):
        ok = messagebox.askyesno(
            "Delete leaf",
            f"Delete leaf {label} and all of its cell classifications?",
            parent=self.owner,
        )
        if ok:
            self.session.confirm_delete_polygon()
            self.set_status(f"Leaf {label} deleted.")
        else:
            self.session.cancel_delete_polygon()
        self.owner.canvas_actor._redraw_overlay()

    def _apply_grid_size(self):
        raw = self.var_grid_size.get().strip()
        try:
            self.session.set_grid_size(float(raw))
        except ValueError:
            messagebox.showerror(
                "Grid size",
                f"Grid size must be a number between {MIN_GRID_SIZE_MM:g} and {MAX_GRID_SIZE_MM:g} mm.",
                parent=self.owner,
            )
            self.session.set_grid_size(get_default_grid_size_mm())
        self.var_grid_size.set(f"{self.session.grid_size_mm:g}")
        self.owner.on_grid_settings_changed(self.session.grid_size_mm, self.session.show_grid)

    def _on_grid_toggle(self):
        self.session.set_grid_visible(bool(self.var_show_grid.get()))
        self.owner.on_grid_settings_changed(self.session.grid_size_mm, self.session.show_grid)

    def _on_completed_toggle(self):
        self.session.set_completed(bool(self.var_completed.get()))
