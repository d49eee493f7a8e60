from __future__ import annotations

import tkinter as tk
from tkinter import ttk
from typing import Callable


class ToolbarPanel:
    def __init__(
        self,
        owner,
        parent: tk.Widget,
        *,
        on_tool_change: Callable[[], None],
        on_undo: Callable[[], None],
        on_clear: Callable[[], None],
        on_fit_toggle: Callable[[], None],
    ) -> None:
        self.owner = owner
        self.frame = ttk.Frame(parent)
        self.frame.pack(side="top", fill="x")

        ttk.Label(self.frame, text="Tool:").pack(side="left")
        for lbl, val in [
            ("Scale line", "scale"),
            ("Leaf outline", "polygon"),
        ]:
            ttk.Radiobutton(
                self.frame,
                text=lbl,
                value=val,
                variable=owner.tool_mode,
                command=on_tool_change,
            ).pack(side="left", padx=(8, 0))

        ttk.Separator(self.frame, orient="vertical").pack(side="left", fill="y", padx=10)
        owner.btn_undo = ttk.Button(self.frame, text="Undo", command=on_undo)
        owner.btn_undo.pack(side="left")
        ttk.Button(self.frame, text="Clear outline", command=on_clear).pack(side="left", padx=(8, 0))

        ttk.Checkbutton(
            self.frame,
            text="Fit",
            variable=owner.var_fit_image,
            command=on_fit_toggle,
        ).pack(side="left", padx=(10, 0))
