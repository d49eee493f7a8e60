import pytest

from herbivory_counter.data_model import Point, ScaleData
from herbivory_counter.persistence import PersistenceAdapter, PersistenceError

VERTS = [Point(0, 0), Point(10, 0), Point(10, 10)]


def test_writes_are_deferred_to_scheduler(api, image_id):
    queue = []
    adapter = PersistenceAdapter(api, schedule=queue.append)
    saved = []
    adapter.upsert_polygon(image_id, "01", VERTS, on_saved=saved.append)

    assert adapter.get_polygons(image_id) == []
    assert saved == []

    for job in queue:
        job()
    stored = adapter.get_polygons(image_id)
    assert len(stored) == 1
    assert saved == [stored[0].id]
    assert stored[0].vertices == VERTS


def test_scale_round_trip(adapter, image_id):
    assert adapter.get_scale(image_id) is None
    scale = ScaleData(px_per_cm=30.0, line_start=Point(100, 200), line_end=Point(400, 200), cm_value=10.0)
    adapter.save_scale(image_id, scale)
    assert adapter.get_scale(image_id) == scale
    adapter.clear_scale(image_id)
    assert adapter.get_scale(image_id) is None


def test_failure_is_reported_not_raised(api, image_id):
    errors = []
    adapter = PersistenceAdapter(api, on_error=lambda name, err: errors.append((name, err)))
    api.close()

    saved = []
    adapter.upsert_polygon(image_id, "01", VERTS, on_saved=saved.append)
    adapter.delete_polygon(1)

    assert saved == []
    assert errors == [("polygon:upsert", "No database open"), ("polygon:delete", "No database open")]
    assert adapter.last_error == "No database open"


def test_failed_read_raises_instead_of_looking_empty(api, image_id):
    errors = []
    adapter = PersistenceAdapter(api, on_error=lambda name, err: errors.append(name))
    api.close()

    with pytest.raises(PersistenceError):
        adapter.get_polygons(image_id)
    with pytest.raises(PersistenceError):
        adapter.get_scale(image_id)
    assert errors == ["polygon:getForImage", "image:getScale"]


def test_delete_polygon(adapter, image_id):
    saved = []
    adapter.upsert_polygon(image_id, "01", VERTS, on_saved=saved.append)
    adapter.delete_polygon(saved[0])
    assert adapter.get_polygons(image_id) == []


def test_mark_completed(api, adapter, image_id):
    adapter.mark_completed(image_id, True)
    img = [i for i in api.invoke("image:list")["images"] if i["id"] == image_id][0]
    assert img["completed"] is True
