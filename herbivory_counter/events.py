from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import logging

from .data_model import Point

logger = logging.getLogger(__name__)


# ---------- polygon editor ----------

@dataclass(frozen=True)
class VertexAdded:
    index: int
    point: Point


@dataclass(frozen=True)
class VertexMoved:
    index: int
    old: Point
    new: Point


@dataclass(frozen=True)
class VertexDeleted:
    index: int
    point: Point


@dataclass(frozen=True)
class VertexDragged:
    # live drag step, not an undoable edit
    index: int
    point: Point


@dataclass(frozen=True)
class SelectionChanged:
    index: Optional[int]


@dataclass(frozen=True)
class PolygonClosed:
    vertices: Tuple[Point, ...]


@dataclass(frozen=True)
class PolygonReopened:
    pass


@dataclass(frozen=True)
class PolygonCleared:
    pass


@dataclass(frozen=True)
class PolygonLoaded:
    vertices: Tuple[Point, ...]
    closed: bool


@dataclass(frozen=True)
class UndoApplied:
    vertices: Tuple[Point, ...]
    closed: bool


@dataclass(frozen=True)
class DeleteRequested:
    leaf_label: Optional[str] = None


# ---------- session ----------

@dataclass(frozen=True)
class LeafActivated:
    label: str


@dataclass(frozen=True)
class LeavesChanged:
    labels: Tuple[str, ...]


@dataclass(frozen=True)
class ScaleChanged:
    px_per_cm: Optional[float]


@dataclass(frozen=True)
class GridChanged:
    cell_count: int
    is_visible: bool
    # set while a vertex is mid-drag; a final update follows on release
    transient: bool = False


@dataclass(frozen=True)
class PersistenceFailed:
    procedure: str
    error: str


Listener = Callable[[object], None]


class EventSource:
    """Minimal observer list; listeners get every event in publish order."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def unsubscribe_all(self) -> None:
        self._listeners.clear()

    def _publish(self, event: object) -> None:
        logger.debug("event %r", event)
        for listener in list(self._listeners):
            listener(event)
