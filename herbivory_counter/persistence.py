from __future__ import annotations

from typing import Callable, List, Optional, Sequence
import logging

from .api import HostApi
from .data_model import Point, ScaleData, StoredPolygon, points_from_dicts, points_to_dicts

logger = logging.getLogger(__name__)

Scheduler = Callable[[Callable[[], None]], None]


def _run_now(fn: Callable[[], None]) -> None:
    fn()


class PersistenceError(RuntimeError):
    """A read could not be answered; distinct from "nothing stored"."""


class PersistenceAdapter:
    """
    Editor-facing persistence calls relayed through HostApi.

    Reads return their result directly and raise PersistenceError when the
    store cannot answer. Writes are handed to `schedule` and not waited
    on; a failed write is logged and reported to `on_error(procedure,
    message)` but never undoes the in-memory edit.
    """

    def __init__(
        self,
        api: HostApi,
        *,
        schedule: Optional[Scheduler] = None,
        on_error: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.api = api
        self.schedule: Scheduler = schedule or _run_now
        self.on_error = on_error
        self.last_error: Optional[str] = None

    def _call(self, name: str, *args) -> Optional[dict]:
        result = self.api.invoke(name, *args)
        if not result.get("success"):
            self._report(name, result.get("error") or "Unknown error")
            return None
        return result

    def _read(self, name: str, *args) -> dict:
        result = self._call(name, *args)
        if result is None:
            raise PersistenceError(f"{name} failed: {self.last_error}")
        return result

    def _report(self, name: str, error: str) -> None:
        self.last_error = error
        logger.warning("persistence call %s failed: %s", name, error)
        if self.on_error is not None:
            self.on_error(name, error)

    # ---------- scale ----------

    def get_scale(self, image_id: int) -> Optional[ScaleData]:
        result = self._read("image:getScale", image_id)
        if result.get("scale") is None:
            return None
        return ScaleData.from_dict(result["scale"])

    def save_scale(self, image_id: int, scale: ScaleData) -> None:
        payload = scale.to_dict()
        self.schedule(lambda: self._call("image:saveScale", image_id, payload))

    def clear_scale(self, image_id: int) -> None:
        self.schedule(lambda: self._call("image:clearScale", image_id))

    # ---------- polygons ----------

    def get_polygons(self, image_id: int) -> List[StoredPolygon]:
        result = self._read("polygon:getForImage", image_id)
        return [
            StoredPolygon(
                id=int(p["id"]),
                image_id=int(p["imageId"]),
                leaf_id=str(p["leafId"]),
                vertices=points_from_dicts(p["vertices"]),
            )
            for p in result["polygons"]
        ]

    def upsert_polygon(
        self,
        image_id: int,
        leaf_label: str,
        vertices: Sequence[Point],
        on_saved: Optional[Callable[[int], None]] = None,
    ) -> None:
        payload = points_to_dicts(vertices)

        def _write() -> None:
            result = self._call("polygon:upsert", image_id, leaf_label, payload)
            if result is not None and on_saved is not None:
                on_saved(int(result["polygonId"]))

        self.schedule(_write)

    def delete_polygon(self, polygon_id: int) -> None:
        self.schedule(lambda: self._call("polygon:delete", polygon_id))

    # ---------- image flags ----------

    def mark_completed(self, image_id: int, completed: bool) -> None:
        self.schedule(lambda: self._call("image:markCompleted", image_id, bool(completed)))
