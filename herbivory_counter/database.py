from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence
import json
import logging
import sqlite3

from .data_model import CELL_CATEGORIES, CellRecord, Point, ScaleData, points_to_dicts

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "herbivory.db"
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".heic", ".heif")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS images (
    id INTEGER PRIMARY KEY,
    filepath TEXT UNIQUE NOT NULL,
    sheet_id TEXT,
    scale_px_per_cm REAL,
    scale_line_start_x REAL,
    scale_line_start_y REAL,
    scale_line_end_x REAL,
    scale_line_end_y REAL,
    scale_cm_value REAL,
    completed BOOLEAN DEFAULT FALSE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS polygons (
    id INTEGER PRIMARY KEY,
    image_id INTEGER NOT NULL,
    leaf_id TEXT NOT NULL,
    vertices TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (image_id) REFERENCES images(id)
);

CREATE TABLE IF NOT EXISTS cells (
    id INTEGER PRIMARY KEY,
    polygon_id INTEGER NOT NULL,
    grid_row INTEGER NOT NULL,
    grid_col INTEGER NOT NULL,
    category TEXT NOT NULL,
    researcher TEXT NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (polygon_id) REFERENCES polygons(id) ON DELETE CASCADE,
    UNIQUE(polygon_id, grid_row, grid_col)
);

CREATE TABLE IF NOT EXISTS app_state (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""


def scan_image_files(folder) -> List[Path]:
    """Image files directly inside folder (not recursive), sorted by name."""
    folder = Path(folder)
    return sorted(
        (p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS),
        key=lambda p: p.name,
    )


class Database:
    """SQLite store for images, leaf polygons, cell classifications and app state."""

    def __init__(self, db_path) -> None:
        self.path = Path(db_path)
        self._conn = sqlite3.connect(str(self.path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()
        logger.debug("database ready at %s", self.path)

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def get_tables(self) -> List[str]:
        rows = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        return [r["name"] for r in rows]

    def get_table_columns(self, table: str) -> List[str]:
        if table not in self.get_tables():
            raise ValueError(f"Unknown table: {table}")
        rows = self._conn.execute(f"PRAGMA table_info({table})").fetchall()
        return [r["name"] for r in rows]

    # ---------- app state ----------

    def set_app_state(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO app_state (key, value) VALUES (?, ?)", (key, value)
            )

    def get_app_state(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM app_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row is not None else None

    # ---------- images ----------

    def insert_image(self, filepath: str) -> int:
        with self._conn:
            cur = self._conn.execute("INSERT INTO images (filepath) VALUES (?)", (filepath,))
        return int(cur.lastrowid)

    def get_image(self, image_id: int) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM images WHERE id = ?", (image_id,)).fetchone()

    def get_image_by_path(self, filepath: str) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM images WHERE filepath = ?", (filepath,)).fetchone()

    def get_all_images(self) -> List[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM images ORDER BY filepath").fetchall()

    def update_image_scale(self, image_id: int, scale: ScaleData) -> None:
        with self._conn:
            self._conn.execute(
                """
                UPDATE images SET
                    scale_px_per_cm = ?,
                    scale_line_start_x = ?,
                    scale_line_start_y = ?,
                    scale_line_end_x = ?,
                    scale_line_end_y = ?,
                    scale_cm_value = ?
                WHERE id = ?
                """,
                (
                    scale.px_per_cm,
                    scale.line_start.x,
                    scale.line_start.y,
                    scale.line_end.x,
                    scale.line_end.y,
                    scale.cm_value,
                    image_id,
                ),
            )

    def get_image_scale(self, image_id: int) -> Optional[ScaleData]:
        row = self.get_image(image_id)
        if row is None or row["scale_px_per_cm"] is None:
            return None
        return ScaleData(
            px_per_cm=float(row["scale_px_per_cm"]),
            line_start=Point(float(row["scale_line_start_x"]), float(row["scale_line_start_y"])),
            line_end=Point(float(row["scale_line_end_x"]), float(row["scale_line_end_y"])),
            cm_value=float(row["scale_cm_value"]),
        )

    def clear_image_scale(self, image_id: int) -> None:
        with self._conn:
            self._conn.execute(
                """
                UPDATE images SET
                    scale_px_per_cm = NULL,
                    scale_line_start_x = NULL,
                    scale_line_start_y = NULL,
                    scale_line_end_x = NULL,
                    scale_line_end_y = NULL,
                    scale_cm_value = NULL
                WHERE id = ?
                """,
                (image_id,),
            )

    def update_image_sheet_id(self, image_id: int, sheet_id: Optional[str]) -> None:
        with self._conn:
            self._conn.execute("UPDATE images SET sheet_id = ? WHERE id = ?", (sheet_id, image_id))

    def mark_image_completed(self, image_id: int, completed: bool) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE images SET completed = ? WHERE id = ?", (1 if completed else 0, image_id)
            )

    # ---------- polygons ----------

    def insert_polygon(self, image_id: int, leaf_id: str, vertices: Sequence[Point]) -> int:
        with self._conn:
            cur = self._conn.execute(
                "INSERT INTO polygons (image_id, leaf_id, vertices) VALUES (?, ?, ?)",
                (image_id, leaf_id, json.dumps(points_to_dicts(vertices))),
            )
        return int(cur.lastrowid)

    def get_polygon(self, polygon_id: int) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM polygons WHERE id = ?", (polygon_id,)).fetchone()

    def get_polygons_for_image(self, image_id: int) -> List[sqlite3.Row]:
        return self._conn.execute(
            "SELECT * FROM polygons WHERE image_id = ? ORDER BY id", (image_id,)
        ).fetchall()

    def update_polygon_vertices(self, polygon_id: int, vertices: Sequence[Point]) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE polygons SET vertices = ? WHERE id = ?",
                (json.dumps(points_to_dicts(vertices)), polygon_id),
            )

    def delete_polygon(self, polygon_id: int) -> None:
        # cells go with it (ON DELETE CASCADE)
        with self._conn:
            self._conn.execute("DELETE FROM polygons WHERE id = ?", (polygon_id,))

    # ---------- cells ----------

    def upsert_cell(self, polygon_id: int, row: int, col: int, category: str, researcher: str) -> None:
        if category not in CELL_CATEGORIES:
            raise ValueError(f"Unknown cell category: {category!r}")
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO cells (polygon_id, grid_row, grid_col, category, researcher, updated_at)
                VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(polygon_id, grid_row, grid_col)
                DO UPDATE SET category = excluded.category,
                              researcher = excluded.researcher,
                              updated_at = CURRENT_TIMESTAMP
                """,
                (polygon_id, row, col, category, researcher),
            )

    def get_cells_for_polygon(self, polygon_id: int) -> List[CellRecord]:
        rows = self._conn.execute(
            "SELECT * FROM cells WHERE polygon_id = ? ORDER BY grid_row, grid_col", (polygon_id,)
        ).fetchall()
        return [_cell_from_row(r) for r in rows]

    def get_cell(self, polygon_id: int, row: int, col: int) -> Optional[CellRecord]:
        r = self._conn.execute(
            "SELECT * FROM cells WHERE polygon_id = ? AND grid_row = ? AND grid_col = ?",
            (polygon_id, row, col),
        ).fetchone()
        return _cell_from_row(r) if r is not None else None

    def delete_cells_for_polygon(self, polygon_id: int) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM cells WHERE polygon_id = ?", (polygon_id,))


def _cell_from_row(r: sqlite3.Row) -> CellRecord:
    return CellRecord(
        id=int(r["id"]),
        polygon_id=int(r["polygon_id"]),
        grid_row=int(r["grid_row"]),
        grid_col=int(r["grid_col"]),
        category=r["category"],
        researcher=r["researcher"],
        updated_at=str(r["updated_at"]),
    )


def init_database(directory) -> Database:
    return Database(Path(directory) / DATABASE_FILENAME)
