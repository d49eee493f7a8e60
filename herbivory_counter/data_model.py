from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Literal, Sequence


CellCategory = Literal["absent", "present", "unsure"]
CELL_CATEGORIES: Tuple[str, ...] = ("absent", "present", "unsure")


@dataclass(frozen=True)
class Point:
    # image pixel coordinates
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": float(self.x), "y": float(self.y)}

    @classmethod
    def from_dict(cls, d: dict) -> "Point":
        return cls(float(d["x"]), float(d["y"]))


def points_to_dicts(points: Sequence[Point]) -> List[dict]:
    return [p.to_dict() for p in points]


def points_from_dicts(items: Sequence[dict]) -> List[Point]:
    return [Point.from_dict(d) for d in items]


@dataclass(frozen=True)
class ScaleData:
    """Calibration record as stored per image."""
    px_per_cm: float
    line_start: Point
    line_end: Point
    cm_value: float

    def to_dict(self) -> dict:
        return {
            "pxPerCm": float(self.px_per_cm),
            "lineStartX": float(self.line_start.x),
            "lineStartY": float(self.line_start.y),
            "lineEndX": float(self.line_end.x),
            "lineEndY": float(self.line_end.y),
            "cmValue": float(self.cm_value),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ScaleData":
        return cls(
            px_per_cm=float(d["pxPerCm"]),
            line_start=Point(float(d["lineStartX"]), float(d["lineStartY"])),
            line_end=Point(float(d["lineEndX"]), float(d["lineEndY"])),
            cm_value=float(d["cmValue"]),
        )


@dataclass
class ImageRecord:
    id: int
    filepath: str
    filename: str
    sheet_id: Optional[str] = None
    completed: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filepath": self.filepath,
            "filename": self.filename,
            "sheetId": self.sheet_id,
            "completed": bool(self.completed),
        }


@dataclass
class StoredPolygon:
    id: int
    image_id: int
    leaf_id: str
    vertices: List[Point] = field(default_factory=list)


@dataclass
class Leaf:
    """One leaf outline on the open image; the active one lives in the editor."""
    label: str
    vertices: List[Point] = field(default_factory=list)
    closed: bool = False
    # storage id once persisted; None while unsaved or after reopening
    polygon_id: Optional[int] = None


@dataclass
class CellRecord:
    id: int
    polygon_id: int
    grid_row: int
    grid_col: int
    category: CellCategory
    researcher: str
    updated_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "polygonId": self.polygon_id,
            "gridRow": self.grid_row,
            "gridCol": self.grid_col,
            "category": self.category,
            "researcher": self.researcher,
            "updatedAt": self.updated_at,
        }
