from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence
import math

import numpy as np

from .data_model import Point


@dataclass(frozen=True)
class BoundingBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


@dataclass(frozen=True)
class GridCell:
    row: int
    col: int
    # top-left corner in image px
    x: float
    y: float
    width: float
    height: float
    center: Point


def distance(a: Point, b: Point) -> float:
    dx = b.x - a.x
    dy = b.y - a.y
    return math.sqrt(dx * dx + dy * dy)


def is_near(p: Point, target: Point, threshold_px: float) -> bool:
    return distance(p, target) <= threshold_px


def nearest_vertex_index(vertices: Sequence[Point], p: Point, radius: float):
    """Index of the closest vertex within radius (inclusive), or None."""
    best = None
    bestd = math.inf
    for i, v in enumerate(vertices):
        d = distance(v, p)
        if d <= radius and d < bestd:
            best = i
            bestd = d
    return best


def is_point_in_polygon(p: Point, vertices: Sequence[Point]) -> bool:
    """
    Horizontal ray-casting parity test.

    Points lying exactly on an edge are classified by the
    `(yi > y) != (yj > y)` tie-break, so a bottom edge can count as inside
    while the matching top edge counts as outside. Grid cell counts depend
    on this, keep it as is.
    """
    n = len(vertices)
    if n < 3:
        return False
    x, y = p.x, p.y
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = vertices[i].x, vertices[i].y
        xj, yj = vertices[j].x, vertices[j].y
        if ((yi > y) != (yj > y)) and (x < (xj - xi) * (y - yi) / (yj - yi) + xi):
            inside = not inside
        j = i
    return inside


def points_in_polygon(xs: np.ndarray, ys: np.ndarray, vertices: Sequence[Point]) -> np.ndarray:
    """
    Vectorised is_point_in_polygon over parallel coordinate arrays.

    Evaluates the same expression edge by edge, so every element agrees
    with the scalar test bit for bit.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    inside = np.zeros(xs.shape, dtype=bool)
    n = len(vertices)
    if n < 3:
        return inside
    j = n - 1
    for i in range(n):
        xi, yi = float(vertices[i].x), float(vertices[i].y)
        xj, yj = float(vertices[j].x), float(vertices[j].y)
        crosses = (yi > ys) != (yj > ys)
        # horizontal edges never cross; their inf/nan intercepts are masked out
        with np.errstate(divide="ignore", invalid="ignore"):
            x_hit = (xj - xi) * (ys - yi) / (yj - yi) + xi
        inside ^= crosses & (xs < x_hit)
        j = i
    return inside


def bounding_box(vertices: Sequence[Point]) -> BoundingBox:
    if not vertices:
        return BoundingBox(0.0, 0.0, 0.0, 0.0)
    xs = [v.x for v in vertices]
    ys = [v.y for v in vertices]
    return BoundingBox(min(xs), min(ys), max(xs), max(ys))


def calculate_scale(line_length_px: float, cm_value: float) -> float:
    """Pixels per centimetre; 0 when cm_value is not positive."""
    if cm_value <= 0:
        return 0.0
    return line_length_px / cm_value


def calculate_cell_size(px_per_cm: float, grid_size_mm: float) -> float:
    """Grid cell edge in pixels: (px/cm / 10) px per mm times the cell size in mm."""
    if px_per_cm <= 0 or grid_size_mm <= 0:
        return 0.0
    px_per_mm = px_per_cm / 10
    return px_per_mm * grid_size_mm


def generate_grid_cells(vertices: Sequence[Point], cell_size_px: float) -> List[GridCell]:
    """
    Rasterise square cells over the polygon's bounding box.

    The grid origin is (min_x, min_y) of the box; row/col are 0-based from
    there. A cell is kept when its centre passes is_point_in_polygon.
    Cells are ordered row-major.
    """
    if len(vertices) < 3 or cell_size_px <= 0:
        return []
    box = bounding_box(vertices)
    cols = int(math.ceil(box.width / cell_size_px))
    rows = int(math.ceil(box.height / cell_size_px))
    if cols <= 0 or rows <= 0:
        return []

    half = cell_size_px / 2
    col_x = box.min_x + np.arange(cols, dtype=np.float64) * cell_size_px
    row_y = box.min_y + np.arange(rows, dtype=np.float64) * cell_size_px
    gx, gy = np.meshgrid(col_x, row_y)  # (rows, cols)
    mask = points_in_polygon(gx + half, gy + half, vertices)

    cells: List[GridCell] = []
    for r, c in zip(*np.nonzero(mask)):
        x = float(gx[r, c])
        y = float(gy[r, c])
        cells.append(GridCell(
            row=int(r),
            col=int(c),
            x=x,
            y=y,
            width=float(cell_size_px),
            height=float(cell_size_px),
            center=Point(x + half, y + half),
        ))
    return cells
