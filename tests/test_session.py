import pytest

from herbivory_counter.calibration import ScaleValueError
from herbivory_counter.data_model import Point
from herbivory_counter.events import (
    DeleteRequested,
    GridChanged,
    LeafActivated,
    LeavesChanged,
    PersistenceFailed,
    ScaleChanged,
)
from herbivory_counter.session import EditorSession


def make_session(adapter, image_id, events=None, **kwargs):
    session = EditorSession(image_id, adapter, **kwargs)
    if events is not None:
        session.subscribe(events.append)
    session.open()
    return session


def outline(session, points):
    for x, y in points:
        session.click(Point(x, y))
    first = points[0]
    session.click(Point(first[0] + 1, first[1] + 1))


SQUARE = [(0, 0), (100, 0), (100, 100), (0, 100)]
OTHER = [(300, 300), (400, 300), (400, 400), (300, 400)]


def calibrate(session, px=1000, cm=10):
    tool = session.scale_tool
    tool.pointer_down(Point(0, 500))
    tool.pointer_move(Point(px, 500))
    tool.pointer_up(Point(px, 500))
    return session.confirm_scale(cm)


def test_open_empty_image_starts_leaf_01(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    assert session.leaf_labels == ("01",)
    assert session.active_label == "01"
    assert session.scale_value is None
    assert session.scale_line is None
    assert LeafActivated("01") in events


def test_scale_end_to_end_restores_after_reopen(adapter, image_id):
    session = make_session(adapter, image_id)
    tool = session.scale_tool
    tool.pointer_down(Point(100, 200))
    tool.pointer_move(Point(400, 200))
    tool.pointer_up(Point(400, 200))
    value = session.confirm_scale(10)
    assert value.px_per_cm == pytest.approx(30)
    session.close()

    reopened = make_session(adapter, image_id)
    assert reopened.px_per_cm == pytest.approx(30)
    assert reopened.scale_line.is_complete
    assert reopened.scale_line.start == Point(100, 200)
    assert reopened.scale_line.end == Point(400, 200)
    assert reopened.scale_value.cm_value == 10


def test_invalid_cm_value_changes_nothing(adapter, image_id):
    session = make_session(adapter, image_id)
    calibrate(session, px=300, cm=10)
    for bad in ("", "abc", 0, -2):
        with pytest.raises(ScaleValueError):
            session.confirm_scale(bad)
    assert session.px_per_cm == pytest.approx(30)
    assert adapter.get_scale(image_id).px_per_cm == pytest.approx(30)


def test_confirm_without_line_is_rejected(adapter, image_id):
    session = make_session(adapter, image_id)
    with pytest.raises(ScaleValueError):
        session.confirm_scale(10)
    assert adapter.get_scale(image_id) is None


def test_clear_scale_erases_record(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    calibrate(session)
    session.clear_scale()
    assert session.scale_line is None
    assert session.px_per_cm is None
    assert adapter.get_scale(image_id) is None
    assert events[-1] == ScaleChanged(None)


def test_closing_persists_polygon(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    stored = adapter.get_polygons(image_id)
    assert [p.leaf_id for p in stored] == ["01"]
    assert stored[0].vertices == [Point(x, y) for x, y in SQUARE]
    assert session.active_leaf.polygon_id == stored[0].id


def test_open_polygon_is_not_persisted(adapter, image_id):
    session = make_session(adapter, image_id)
    for x, y in SQUARE:
        session.click(Point(x, y))
    assert adapter.get_polygons(image_id) == []


def test_delete_end_to_end_removes_polygon_and_cells(api, adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    outline(session, SQUARE)
    polygon_id = session.active_leaf.polygon_id
    assert api.invoke("cell:upsert", polygon_id, 0, 0, "present", "ana")["success"]
    assert api.invoke("cell:getForPolygon", polygon_id)["cells"]

    assert session.request_delete_polygon()
    assert session.pending_delete == "01"
    assert DeleteRequested("01") in events
    assert session.confirm_delete_polygon()

    assert [p.leaf_id for p in adapter.get_polygons(image_id)] == []
    assert api.invoke("cell:getForPolygon", polygon_id)["cells"] == []
    assert session.pending_delete is None
    assert session.leaf_labels == ("01",)
    assert session.editor.vertices == ()


def test_cancel_delete_keeps_polygon(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    session.request_delete_polygon()
    session.cancel_delete_polygon()
    assert not session.confirm_delete_polygon()
    assert len(adapter.get_polygons(image_id)) == 1


def test_delete_key_routes_request_through_session(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    outline(session, SQUARE)
    assert session.delete_key()
    assert session.pending_delete == "01"
    assert DeleteRequested("01") in events
    assert DeleteRequested(None) not in events


def test_delete_after_reopen_finds_stored_row(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    session.undo()
    assert not session.editor.closed
    assert session.active_leaf.polygon_id is None
    session.request_delete_polygon()
    session.confirm_delete_polygon()
    assert adapter.get_polygons(image_id) == []


def test_reclose_after_reopen_updates_same_row(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    first_id = session.active_leaf.polygon_id
    session.undo()
    assert session.active_leaf.polygon_id is None
    session.click(Point(50, 150))
    session.click(Point(1, 1))
    assert session.editor.closed
    stored = adapter.get_polygons(image_id)
    assert len(stored) == 1
    assert len(stored[0].vertices) == 5
    assert session.active_leaf.polygon_id == first_id


def test_moving_vertex_of_closed_polygon_updates_store(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    editor = session.editor
    editor.pointer_down(Point(100, 100))
    editor.pointer_move(Point(120, 130))
    editor.pointer_up(Point(120, 130))
    assert not session.click(Point(120, 130))
    assert adapter.get_polygons(image_id)[0].vertices[2] == Point(120, 130)

    session.undo()
    assert adapter.get_polygons(image_id)[0].vertices[2] == Point(100, 100)


def test_deleting_vertex_of_closed_polygon_updates_store(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    assert session.editor.delete_vertex(3)
    assert len(adapter.get_polygons(image_id)[0].vertices) == 3


def test_new_leaf_requires_closed_outline(adapter, image_id):
    session = make_session(adapter, image_id)
    assert session.new_leaf() is None
    outline(session, SQUARE)
    assert session.new_leaf() == "02"
    assert session.active_label == "02"
    assert session.editor.vertices == ()
    assert session.leaf_labels == ("01", "02")


def test_click_inside_other_leaf_switches(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    session.new_leaf()
    outline(session, OTHER)
    assert session.click(Point(50, 50))
    assert session.active_label == "01"
    assert session.editor.closed
    assert session.editor.vertices[0] == Point(0, 0)
    assert session.leaf_at(Point(350, 350)) == "02"
    assert session.leaf_at(Point(200, 200)) is None


def test_switching_discards_in_flight_drag(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    session.new_leaf()
    outline(session, OTHER)
    editor = session.editor
    editor.pointer_down(Point(400, 400))
    editor.pointer_move(Point(450, 450))
    assert session.select_leaf("01")
    leaf = [l for l in session.leaves if l.label == "02"][0]
    assert leaf.vertices[2] == Point(400, 400)
    assert not session.editor.is_dragging
    assert adapter.get_polygons(image_id)[1].vertices[2] == Point(400, 400)


def test_reopen_image_restores_leaves(adapter, image_id):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    session.new_leaf()
    outline(session, OTHER)
    session.close()

    reopened = make_session(adapter, image_id)
    assert reopened.leaf_labels == ("01", "02")
    assert reopened.active_label == "01"
    assert all(l.closed and l.polygon_id is not None for l in reopened.leaves)
    assert reopened.next_leaf_label() == "03"


def test_grid_follows_scale_polygon_and_size(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    for x, y in SQUARE:
        session.click(Point(x, y))
    calibrate(session)  # 100 px/cm
    assert not session.grid.is_visible

    session.click(Point(1, 1))
    assert session.grid.is_visible
    assert len(session.grid.cells) == 100
    assert GridChanged(100, True) in events

    session.set_grid_size(2)
    assert len(session.grid.cells) == 25

    with pytest.raises(ValueError):
        session.set_grid_size(0)
    assert session.grid_size_mm == 1
    assert len(session.grid.cells) == 100

    session.set_grid_visible(False)
    assert not session.grid.is_visible
    assert session.grid.cells == []


def test_grid_disappears_when_reopened(adapter, image_id):
    session = make_session(adapter, image_id)
    calibrate(session)
    outline(session, SQUARE)
    assert session.grid.is_visible
    session.undo()
    assert not session.grid.is_visible
    assert session.grid.cells == []


def test_persistence_failure_keeps_edit(api, adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    api.close()
    outline(session, SQUARE)
    assert session.editor.closed
    assert session.active_leaf.polygon_id is None
    failures = [e for e in events if isinstance(e, PersistenceFailed)]
    assert failures and failures[0].procedure == "polygon:upsert"
    assert failures[0].error == "No database open"


def test_close_discards_transient_state_and_stops_writes(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    session.scale_tool.pointer_down(Point(0, 0))
    session.scale_tool.pointer_move(Point(300, 0))
    session.close()
    assert session.scale_line is None
    count = len(events)

    assert not session.click(Point(10, 10))
    assert session.editor.vertices == ()
    session.clear_scale()
    assert len(events) == count
    assert adapter.get_polygons(image_id) == []


def test_completed_flag_is_written(api, adapter, image_id):
    session = make_session(adapter, image_id)
    session.set_completed(True)
    images = {img["id"]: img for img in api.invoke("image:list")["images"]}
    assert images[image_id]["completed"] is True


def unreadable(*_args):
    raise RuntimeError("disk I/O error")


def test_unreadable_leaves_are_never_overwritten(api, adapter, image_id, monkeypatch):
    session = make_session(adapter, image_id)
    outline(session, SQUARE)
    session.close()

    monkeypatch.setitem(api._handlers, "polygon:getForImage", unreadable)
    events = []
    reopened = make_session(adapter, image_id, events)
    assert not reopened.synced
    assert reopened.leaf_labels == ("01",)

    outline(reopened, [(500, 500), (600, 500), (600, 600)])
    assert reopened.editor.closed
    failed = [e.procedure for e in events if isinstance(e, PersistenceFailed)]
    assert failed == ["polygon:getForImage", "polygon:upsert"]

    monkeypatch.undo()
    stored = adapter.get_polygons(image_id)
    assert [p.leaf_id for p in stored] == ["01"]
    assert stored[0].vertices == [Point(x, y) for x, y in SQUARE]

    reopened.open()
    assert reopened.synced
    assert reopened.editor.vertices[0] == Point(0, 0)


def test_unreadable_scale_is_not_cleared(api, adapter, image_id, monkeypatch):
    session = make_session(adapter, image_id)
    calibrate(session, px=300, cm=10)
    session.close()

    monkeypatch.setitem(api._handlers, "image:getScale", unreadable)
    reopened = make_session(adapter, image_id)
    assert reopened.px_per_cm is None
    reopened.clear_scale()

    monkeypatch.undo()
    assert adapter.get_scale(image_id).px_per_cm == pytest.approx(30)


def test_switching_away_from_empty_leaf_drops_it(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    outline(session, SQUARE)
    assert session.new_leaf() == "02"

    assert session.click(Point(50, 50))
    assert session.active_label == "01"
    assert session.leaf_labels == ("01",)
    assert events[-1] == LeavesChanged(("01",))
    assert session.new_leaf() == "02"


def test_grid_updates_while_dragging_are_transient(adapter, image_id):
    events = []
    session = make_session(adapter, image_id, events)
    calibrate(session)
    outline(session, SQUARE)
    editor = session.editor
    editor.pointer_down(Point(100, 100))
    events.clear()

    editor.pointer_move(Point(110, 100))
    editor.pointer_move(Point(120, 100))
    during = [e for e in events if isinstance(e, GridChanged)]
    assert len(during) == 2
    assert all(e.transient for e in during)

    editor.pointer_up(Point(120, 100))
    after = [e for e in events if isinstance(e, GridChanged)]
    assert len(after) == 3
    assert not after[-1].transient
