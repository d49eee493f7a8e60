from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox
from typing import Callable

from .calibration import ScaleValueError


class CalibrationPanel:
    def __init__(
        self,
        owner,
        parent: tk.Widget,
        *,
        on_confirm: Callable[[], None],
        on_clear: Callable[[], None],
    ) -> None:
        self.owner = owner
        frame = ttk.LabelFrame(parent, text="Scale", padding=8)
        self.frame = frame
        frame.pack(side="top", fill="x")

        grid = ttk.Frame(frame)
        grid.pack(fill="x")
        for col in range(3):
            grid.columnconfigure(col, weight=1)

        ttk.Label(grid, text="Line length").grid(row=0, column=0, sticky="w")
        ttk.Label(grid, textvariable=owner.var_line_length).grid(row=0, column=1, columnspan=2, sticky="w")

        ttk.Label(grid, text="Real length (cm)").grid(row=1, column=0, sticky="w", pady=(6, 0))
        owner.ent_cm_value = ttk.Entry(grid, textvariable=owner.var_cm_value, width=10)
        owner.ent_cm_value.grid(row=1, column=1, sticky="w", pady=(6, 0))
        owner.ent_cm_value.bind("<Return>", lambda _e: on_confirm())

        ttk.Label(grid, text="Scale").grid(row=2, column=0, sticky="w", pady=(6, 0))
        ttk.Label(grid, textvariable=owner.var_px_per_cm).grid(row=2, column=1, columnspan=2, sticky="w", pady=(6, 0))

        btns = ttk.Frame(frame)
        btns.pack(fill="x", pady=(8, 0))
        owner.btn_confirm_scale = ttk.Button(btns, text="Confirm", command=on_confirm)
        owner.btn_confirm_scale.pack(side="left")
        ttk.Button(btns, text="Clear scale", command=on_clear).pack(side="left", padx=(8, 0))


class Calibrator:
    def __init__(self, owner) -> None:
        object.__setattr__(self, "owner", owner)

    def __getattr__(self, name):
        return getattr(self.owner, name)

    def __setattr__(self, name, value) -> None:
        if name == "owner":
            object.__setattr__(self, name, value)
            return
        setattr(self.owner, name, value)

    def _confirm_scale(self):
        try:
            value = self.session.confirm_scale(self.var_cm_value.get())
        except ScaleValueError as e:
            messagebox.showerror("Scale", str(e), parent=self.owner)
            return
        self.set_status(f"Scale set: {value.px_per_cm:.2f} px/cm")
        self._refresh_scale_ui()

    def _clear_scale(self):
        if self.session.scale_line is None and self.session.scale_value is None:
            return
        self.session.clear_scale()
        self.set_status("Scale cleared.")
        self._refresh_scale_ui()

    def _refresh_scale_ui(self):
        line = self.session.scale_line
        value = self.session.scale_value
        if line is None:
            self.var_line_length.set("-")
        else:
            self.var_line_length.set(f"{line.length:.1f} px")

        if value is None:
            self.var_px_per_cm.set("not calibrated")
        else:
            stale = line is not None and abs(line.length - value.line_length) > 1e-6
            txt = f"{value.px_per_cm:.3f} px/cm"
            self.var_px_per_cm.set(txt + (" (line moved, confirm again)" if stale else ""))
            if not self.var_cm_value.get().strip():
                self.var_cm_value.set(f"{value.cm_value:g}")

        can_confirm = line is not None and line.is_complete
        self.btn_confirm_scale.configure(state=("normal" if can_confirm else "disabled"))
