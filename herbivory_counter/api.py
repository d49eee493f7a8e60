from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional
import json
import logging

from .data_model import ImageRecord, ScaleData, points_from_dicts
from .database import DATABASE_FILENAME, Database, init_database, scan_image_files

logger = logging.getLogger(__name__)


def _plain(value):
    """Round-trip through JSON so only plain values cross the boundary."""
    return json.loads(json.dumps(value))


def _image_dict(row) -> dict:
    return ImageRecord(
        id=int(row["id"]),
        filepath=row["filepath"],
        filename=Path(row["filepath"]).name,
        sheet_id=row["sheet_id"],
        completed=bool(row["completed"]),
    ).to_dict()


class HostApi:
    """
    Named request/response procedures in front of the SQLite store.

    invoke() never raises for store or lookup failures: results carry
    success=False and an error message instead.
    """

    def __init__(self) -> None:
        self.db: Optional[Database] = None
        self.folder: Optional[Path] = None
        self._handlers: Dict[str, Callable[..., dict]] = {
            "folder:open": self._open_folder,
            "database:exists": self._database_exists,
            "database:getTables": self._get_tables,
            "image:list": self._list_images,
            "image:saveScale": self._save_scale,
            "image:getScale": self._get_scale,
            "image:clearScale": self._clear_scale,
            "image:setSheetId": self._set_sheet_id,
            "image:markCompleted": self._mark_completed,
            "polygon:getForImage": self._get_polygons,
            "polygon:upsert": self._upsert_polygon,
            "polygon:delete": self._delete_polygon,
            "cell:upsert": self._upsert_cell,
            "cell:getForPolygon": self._get_cells,
            "appState:get": self._get_app_state,
            "appState:set": self._set_app_state,
        }

    @property
    def procedures(self):
        return sorted(self._handlers)

    def invoke(self, name: str, *args) -> dict:
        # non-JSON arguments are a caller bug: let TypeError propagate
        args = _plain(list(args))
        handler = self._handlers.get(name)
        if handler is None:
            return {"success": False, "error": f"Unknown procedure: {name}"}
        try:
            result = handler(*args)
        except Exception as e:
            logger.warning("%s failed: %s", name, e)
            return {"success": False, "error": str(e) or type(e).__name__}
        return _plain(result)

    def close(self) -> None:
        if self.db is not None:
            self.db.close()
            self.db = None
            self.folder = None

    def _require_db(self) -> Database:
        if self.db is None:
            raise RuntimeError("No database open")
        return self.db

    # ---------- folder / database ----------

    def _open_folder(self, folder_path: str) -> dict:
        folder = Path(folder_path)
        if not folder.is_dir():
            return {"success": False, "error": f"Not a folder: {folder_path}"}
        self.close()
        db = init_database(folder)
        self.db = db
        self.folder = folder
        added = 0
        for path in scan_image_files(folder):
            if db.get_image_by_path(str(path)) is None:
                db.insert_image(str(path))
                added += 1
        logger.info("opened %s (%d new images)", folder, added)
        return {
            "success": True,
            "folderPath": str(folder),
            "databasePath": str(folder / DATABASE_FILENAME),
            "images": [_image_dict(r) for r in db.get_all_images()],
        }

    def _database_exists(self, folder_path: str) -> dict:
        return {"success": True, "exists": (Path(folder_path) / DATABASE_FILENAME).exists()}

    def _get_tables(self) -> dict:
        return {"success": True, "tables": self._require_db().get_tables()}

    # ---------- images ----------

    def _list_images(self) -> dict:
        return {"success": True, "images": [_image_dict(r) for r in self._require_db().get_all_images()]}

    def _save_scale(self, image_id: int, scale: dict) -> dict:
        self._require_db().update_image_scale(int(image_id), ScaleData.from_dict(scale))
        return {"success": True}

    def _get_scale(self, image_id: int) -> dict:
        data = self._require_db().get_image_scale(int(image_id))
        return {"success": True, "scale": data.to_dict() if data is not None else None}

    def _clear_scale(self, image_id: int) -> dict:
        self._require_db().clear_image_scale(int(image_id))
        return {"success": True}

    def _set_sheet_id(self, image_id: int, sheet_id: Optional[str]) -> dict:
        self._require_db().update_image_sheet_id(int(image_id), sheet_id)
        return {"success": True}

    def _mark_completed(self, image_id: int, completed: bool) -> dict:
        self._require_db().mark_image_completed(int(image_id), bool(completed))
        return {"success": True}

    # ---------- polygons ----------

    def _get_polygons(self, image_id: int) -> dict:
        rows = self._require_db().get_polygons_for_image(int(image_id))
        polygons = [
            {
                "id": int(r["id"]),
                "imageId": int(r["image_id"]),
                "leafId": r["leaf_id"],
                "vertices": json.loads(r["vertices"]),
            }
            for r in rows
        ]
        return {"success": True, "polygons": polygons}

    def _upsert_polygon(self, image_id: int, leaf_id: str, vertices: list) -> dict:
        db = self._require_db()
        points = points_from_dicts(vertices)
        for r in db.get_polygons_for_image(int(image_id)):
            if r["leaf_id"] == leaf_id:
                db.update_polygon_vertices(int(r["id"]), points)
                return {"success": True, "polygonId": int(r["id"])}
        polygon_id = db.insert_polygon(int(image_id), leaf_id, points)
        return {"success": True, "polygonId": polygon_id}

    def _delete_polygon(self, polygon_id: int) -> dict:
        self._require_db().delete_polygon(int(polygon_id))
        return {"success": True}

    # ---------- cells ----------

    def _upsert_cell(self, polygon_id: int, row: int, col: int, category: str, researcher: str) -> dict:
        self._require_db().upsert_cell(int(polygon_id), int(row), int(col), category, researcher)
        return {"success": True}

    def _get_cells(self, polygon_id: int) -> dict:
        cells = self._require_db().get_cells_for_polygon(int(polygon_id))
        return {"success": True, "cells": [c.to_dict() for c in cells]}

    # ---------- app state ----------

    def _get_app_state(self, key: str) -> dict:
        return {"success": True, "value": self._require_db().get_app_state(key)}

    def _set_app_state(self, key: str, value: str) -> dict:
        self._require_db().set_app_state(key, value)
        return {"success": True}
