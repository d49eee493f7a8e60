from __future__ import annotations

import logging
import tkinter as tk
from pathlib import Path
from tkinter import ttk, messagebox, filedialog, simpledialog
from typing import List, Optional

from herbivory_counter.api import HostApi
from herbivory_counter.settings import CONFIG_PATH, load_settings, save_settings
from herbivory_counter.ui_window import AnnotatorWindow

logger = logging.getLogger("herbivory")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


# -----------------------------
# Main App
# -----------------------------

class HerbivoryApp(tk.Tk):
    def __init__(self):
        super().__init__()
        self.title("Herbivory Counter")
        self.geometry("760x560")

        self.settings = load_settings()
        self.api = HostApi()
        self.images: List[dict] = []
        self._annotator: Optional[AnnotatorWindow] = None

        self.researcher_var = tk.StringVar(value=self.settings.researcher)
        self.folder_var = tk.StringVar(value="No folder open.")
        self.status_var = tk.StringVar(value="Ready.")

        self._build_ui()
        self.protocol("WM_DELETE_WINDOW", self.quit_app)

        last = self.settings.last_folder
        if last and Path(last).is_dir():
            self.after(0, lambda: self.open_folder(last))

    def _build_ui(self):
        toolbar = ttk.Frame(self, padding=(8, 8, 8, 4))
        toolbar.pack(side="top", fill="x")

        ttk.Button(toolbar, text="Open Folder…", command=self.choose_folder).pack(side="left")
        ttk.Button(toolbar, text="Annotate", command=self.open_selected).pack(side="left", padx=(8, 0))
        ttk.Button(toolbar, text="Sheet ID…", command=self.edit_sheet_id).pack(side="left", padx=(8, 0))

        ttk.Label(toolbar, text="Researcher:").pack(side="left", padx=(16, 0))
        ent = ttk.Entry(toolbar, textvariable=self.researcher_var, width=18)
        ent.pack(side="left", padx=(6, 0))
        ent.bind("<FocusOut>", lambda _e: self._save_researcher())
        ent.bind("<Return>", lambda _e: self._save_researcher())

        ttk.Label(self, textvariable=self.folder_var, padding=(8, 0)).pack(side="top", fill="x")

        body = ttk.Frame(self, padding=(8, 4, 8, 8))
        body.pack(side="top", fill="both", expand=True)

        self.tree = ttk.Treeview(
            body,
            columns=("filename", "sheet", "done"),
            show="headings",
            selectmode="browse",
        )
        self.tree.heading("filename", text="Image")
        self.tree.heading("sheet", text="Sheet ID")
        self.tree.heading("done", text="Done")
        self.tree.column("filename", width=380, anchor="w")
        self.tree.column("sheet", width=160, anchor="w")
        self.tree.column("done", width=60, anchor="center")
        self.tree.pack(side="left", fill="both", expand=True)
        self.tree.bind("<Double-1>", lambda _e: self.open_selected())

        yscroll = ttk.Scrollbar(body, orient="vertical", command=self.tree.yview)
        yscroll.pack(side="right", fill="y")
        self.tree.configure(yscrollcommand=yscroll.set)

        footer = ttk.Frame(self, padding=(8, 0, 8, 8))
        footer.pack(side="bottom", fill="x")
        ttk.Label(footer, textvariable=self.status_var).pack(side="left")

    def set_status(self, msg: str):
        self.status_var.set(msg)
        self.update_idletasks()

    # ---------- settings ----------

    def _save_settings(self):
        try:
            save_settings(self.settings)
        except OSError as e:
            logger.warning("could not save settings to %s: %s", CONFIG_PATH, e)
            self.set_status(f"Settings not saved: {e}")

    def _save_researcher(self):
        name = self.researcher_var.get().strip()
        if name != self.settings.researcher:
            self.settings.researcher = name
            self._save_settings()

    def _on_grid_settings(self, grid_size_mm: float, show_grid: bool):
        self.settings.grid_size_mm = grid_size_mm
        self.settings.show_grid = show_grid
        self._save_settings()

    # ---------- folder / images ----------

    def choose_folder(self):
        initial = self.settings.last_folder or str(Path.home())
        path = filedialog.askdirectory(title="Open image folder", initialdir=initial, parent=self)
        if not path:
            return
        self.open_folder(path)

    def open_folder(self, path: str):
        self._close_annotator()
        self.set_status("Opening folder…")
        result = self.api.invoke("folder:open", path)
        if not result.get("success"):
            messagebox.showerror("Open folder failed", result.get("error") or "Unknown error", parent=self)
            self.set_status("Ready.")
            return

        self.images = result["images"]
        self.folder_var.set(result["folderPath"])
        self.settings.last_folder = result["folderPath"]
        self._save_settings()
        self._fill_image_list()
        self.set_status(f"{len(self.images)} images. Database: {Path(result['databasePath']).name}")

        last = self.api.invoke("appState:get", "last_image")
        if last.get("success") and last.get("value") and self.tree.exists(last["value"]):
            self.tree.selection_set(last["value"])
            self.tree.see(last["value"])

    def _fill_image_list(self):
        for item in self.tree.get_children(""):
            self.tree.delete(item)
        for img in self.images:
            self.tree.insert(
                "",
                "end",
                iid=str(img["id"]),
                values=(img["filename"], img.get("sheetId") or "", "Y" if img.get("completed") else ""),
            )

    def _refresh_images(self):
        result = self.api.invoke("image:list")
        if result.get("success"):
            self.images = result["images"]
            sel = self.tree.selection()
            self._fill_image_list()
            if sel and self.tree.exists(sel[0]):
                self.tree.selection_set(sel[0])

    def _selected_image(self) -> Optional[dict]:
        sel = self.tree.selection()
        if not sel:
            return None
        for img in self.images:
            if str(img["id"]) == sel[0]:
                return img
        return None

    def edit_sheet_id(self):
        img = self._selected_image()
        if img is None:
            return
        new = simpledialog.askstring("Sheet ID", "Sheet ID:", initialvalue=img.get("sheetId") or "", parent=self)
        if new is None:
            return
        result = self.api.invoke("image:setSheetId", img["id"], new.strip() or None)
        if not result.get("success"):
            messagebox.showerror("Sheet ID", result.get("error") or "Unknown error", parent=self)
            return
        self._refresh_images()

    def open_selected(self):
        img = self._selected_image()
        if img is None:
            messagebox.showinfo("Annotate", "Select an image first.", parent=self)
            return
        self._close_annotator()
        try:
            self._annotator = AnnotatorWindow(
                self,
                api=self.api,
                image=img,
                grid_size_mm=self.settings.grid_size_mm,
                show_grid=self.settings.show_grid,
                on_grid_settings=self._on_grid_settings,
                on_close=self._on_annotator_closed,
            )
        except OSError as e:
            logger.exception("could not open %s", img["filepath"])
            messagebox.showerror("Open image failed", str(e), parent=self)
            return
        self.api.invoke("appState:set", "last_image", str(img["id"]))
        self.set_status(f"Annotating {img['filename']}")

    def _on_annotator_closed(self):
        self._annotator = None
        # pending writes are on after_idle; refresh after them
        self.after_idle(self._refresh_images)

    def _close_annotator(self):
        if self._annotator is not None:
            self._annotator.close()
        # flush writes queued on after_idle before the store can change
        self.update_idletasks()

    def quit_app(self):
        self._close_annotator()
        self._save_researcher()
        self.api.close()
        self.destroy()


def main():
    settings = load_settings()
    setup_logging(settings.log_level)
    app = HerbivoryApp()
    app.mainloop()


if __name__ == "__main__":
    main()
