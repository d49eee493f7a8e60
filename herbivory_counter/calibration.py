from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Literal, Optional
import logging
import math

from .data_model import Point, ScaleData
from .geometry import distance, is_near, calculate_scale
from .ui_state import ScaleDrawState

logger = logging.getLogger(__name__)

Endpoint = Literal["start", "end"]

ENDPOINT_RADIUS = 8
ENDPOINT_HIT_THRESHOLD = 15
MIN_LINE_LENGTH_PX = 10


class ScaleValueError(ValueError):
    """Rejected centimetre value or missing line during scale confirmation."""


@dataclass(frozen=True)
class ScaleLine:
    start: Point
    end: Point
    is_complete: bool = True
    is_dragging: bool = False
    drag_target: Optional[Endpoint] = None

    @property
    def length(self) -> float:
        return distance(self.start, self.end)


@dataclass(frozen=True)
class ScaleValue:
    px_per_cm: float
    cm_value: float
    line_length: float


def create_scale_line(start: Point, end: Point) -> ScaleLine:
    return ScaleLine(start=start, end=end, is_complete=True)


def update_line_endpoint(line: ScaleLine, endpoint: Endpoint, pos: Point) -> ScaleLine:
    if endpoint == "start":
        return replace(line, start=pos)
    return replace(line, end=pos)


def parse_cm_value(raw) -> float:
    """Accept a number or numeric text; must be finite and > 0."""
    if isinstance(raw, bool):
        raise ScaleValueError("Please enter a valid positive number.")
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            raise ScaleValueError("Please enter a valid positive number.")
    try:
        v = float(raw)
    except (TypeError, ValueError):
        raise ScaleValueError("Please enter a valid positive number.") from None
    if not math.isfinite(v) or v <= 0:
        raise ScaleValueError("Please enter a valid positive number.")
    return v


def compute_scale_value(line: Optional[ScaleLine], cm_value) -> ScaleValue:
    if line is None or not line.is_complete:
        raise ScaleValueError("Draw a scale line first.")
    cm = parse_cm_value(cm_value)
    length = line.length
    return ScaleValue(px_per_cm=calculate_scale(length, cm), cm_value=cm, line_length=length)


def scale_data_from(line: ScaleLine, value: ScaleValue) -> ScaleData:
    return ScaleData(
        px_per_cm=value.px_per_cm,
        line_start=line.start,
        line_end=line.end,
        cm_value=value.cm_value,
    )


def restore_from_scale_data(data: ScaleData):
    """Rebuild (complete line, derived value) from a stored calibration."""
    line = create_scale_line(data.line_start, data.line_end)
    value = ScaleValue(px_per_cm=data.px_per_cm, cm_value=data.cm_value, line_length=line.length)
    return line, value


class ScaleTool:
    """
    Pointer state machine for the single calibration line of an image.

    Empty -> Drawing (provisional line) -> Complete -> Dragging endpoint ->
    Complete. A release shorter than MIN_LINE_LENGTH_PX discards the line.
    """

    def __init__(self, on_line_complete: Optional[Callable[[ScaleLine], None]] = None) -> None:
        self._line: Optional[ScaleLine] = None
        self._draw = ScaleDrawState()
        self.on_line_complete = on_line_complete

    @property
    def line(self) -> Optional[ScaleLine]:
        return self._line

    @property
    def is_drawing(self) -> bool:
        return self._draw.drawing

    def set_line(self, line: Optional[ScaleLine]) -> None:
        self._line = line
        self._draw.reset()

    def clear_line(self) -> None:
        self._line = None
        self._draw.reset()

    def hit_endpoint(self, pos: Point) -> Optional[Endpoint]:
        line = self._line
        if line is None or not line.is_complete:
            return None
        if is_near(pos, line.start, ENDPOINT_HIT_THRESHOLD):
            return "start"
        if is_near(pos, line.end, ENDPOINT_HIT_THRESHOLD):
            return "end"
        return None

    # ---------- pointer events ----------

    def pointer_down(self, pos: Point) -> None:
        target = self.hit_endpoint(pos)
        if target is not None:
            self._line = replace(self._line, is_dragging=True, drag_target=target)
            return
        # new draw replaces any previous line
        self._draw.drawing = True
        self._draw.draw_start = pos
        self._line = None

    def pointer_move(self, pos: Point) -> None:
        line = self._line
        if line is not None and line.is_dragging and line.drag_target:
            self._line = update_line_endpoint(line, line.drag_target, pos)
            return
        if self._draw.drawing and self._draw.draw_start is not None:
            self._line = ScaleLine(start=self._draw.draw_start, end=pos, is_complete=False)

    def pointer_up(self, pos: Point) -> None:
        line = self._line
        if line is not None and line.is_dragging:
            self._line = replace(line, is_dragging=False, drag_target=None)
            self._fire_complete()
            return
        if self._draw.drawing and self._draw.draw_start is not None:
            if distance(self._draw.draw_start, pos) > MIN_LINE_LENGTH_PX:
                self._line = create_scale_line(self._draw.draw_start, pos)
                self._fire_complete()
            else:
                # accidental click
                self._line = None
        self._draw.reset()

    def pointer_leave(self) -> None:
        line = self._line
        if line is not None and line.is_dragging:
            self._line = replace(line, is_dragging=False, drag_target=None)
            self._fire_complete()
            return
        if self._draw.drawing:
            self._draw.reset()
            if line is None or not line.is_complete:
                self._line = None

    def cancel(self) -> None:
        """Drop uncommitted state (provisional line or live endpoint drag)."""
        line = self._line
        self._draw.reset()
        if line is None:
            return
        if not line.is_complete:
            self._line = None
        elif line.is_dragging:
            self._line = replace(line, is_dragging=False, drag_target=None)

    def _fire_complete(self) -> None:
        logger.debug("scale line complete: %.1f px", self._line.length)
        if self.on_line_complete is not None:
            self.on_line_complete(self._line)
