from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence
import math

from .data_model import Point
from .geometry import GridCell, calculate_cell_size, generate_grid_cells

MIN_GRID_SIZE_MM = 0.1
MAX_GRID_SIZE_MM = 100.0  # 10 cm
DEFAULT_GRID_SIZE_MM = 1.0


@dataclass
class GridState:
    grid_size_mm: float = DEFAULT_GRID_SIZE_MM
    cell_size_px: float = 0.0
    cells: List[GridCell] = field(default_factory=list)
    is_visible: bool = False


def get_default_grid_size_mm() -> float:
    return DEFAULT_GRID_SIZE_MM


def validate_grid_size(grid_size_mm) -> bool:
    if isinstance(grid_size_mm, bool) or not isinstance(grid_size_mm, (int, float)):
        return False
    if math.isnan(grid_size_mm):
        return False
    if grid_size_mm <= 0:
        return False
    return MIN_GRID_SIZE_MM <= grid_size_mm <= MAX_GRID_SIZE_MM


def create_grid_state(grid_size_mm: float = DEFAULT_GRID_SIZE_MM) -> GridState:
    return GridState(grid_size_mm=grid_size_mm)


def build_grid_state(
    vertices: Sequence[Point],
    closed: bool,
    px_per_cm: float,
    grid_size_mm: float,
    *,
    visible: bool = True,
) -> GridState:
    """
    Regenerate the sampling grid from scratch.

    Nothing is cached: call again whenever the polygon, the scale or the
    grid size changes. An open polygon always yields an invisible, empty grid.
    """
    cell_size = calculate_cell_size(px_per_cm, grid_size_mm)
    if not closed or not visible or cell_size <= 0:
        return GridState(grid_size_mm=grid_size_mm, cell_size_px=cell_size)
    cells = generate_grid_cells(vertices, cell_size)
    return GridState(
        grid_size_mm=grid_size_mm,
        cell_size_px=cell_size,
        cells=cells,
        is_visible=True,
    )
