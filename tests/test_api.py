import pytest

from herbivory_counter.api import HostApi
from herbivory_counter.database import DATABASE_FILENAME


def test_open_folder_lists_images(api, image_folder):
    images = api.invoke("image:list")["images"]
    assert [img["filename"] for img in images] == ["leaf_a.PNG", "leaf_b.jpg", "scan.heic"]
    assert all(img["completed"] is False and img["sheetId"] is None for img in images)
    assert api.invoke("database:exists", str(image_folder)) == {"success": True, "exists": True}


def test_reopen_does_not_duplicate_images(api, image_folder):
    (image_folder / "new.jpeg").write_bytes(b"")
    result = api.invoke("folder:open", str(image_folder))
    assert result["success"]
    assert result["databasePath"] == str(image_folder / DATABASE_FILENAME)
    assert len(result["images"]) == 4


def test_open_missing_folder_fails(tmp_path):
    host = HostApi()
    result = host.invoke("folder:open", str(tmp_path / "missing"))
    assert result["success"] is False
    assert "missing" in result["error"]


def test_calls_before_open_report_no_database():
    host = HostApi()
    assert host.invoke("image:list") == {"success": False, "error": "No database open"}
    assert host.invoke("database:getTables")["success"] is False


def test_unknown_procedure():
    result = HostApi().invoke("image:explode")
    assert result["success"] is False
    assert "image:explode" in result["error"]


def test_arguments_must_be_json_values(api):
    with pytest.raises(TypeError):
        api.invoke("appState:set", "key", object())


def test_tables(api):
    assert sorted(api.invoke("database:getTables")["tables"]) == ["app_state", "cells", "images", "polygons"]


def test_scale_procedures(api, image_id):
    scale = {"pxPerCm": 30, "lineStartX": 100, "lineStartY": 200, "lineEndX": 400, "lineEndY": 200, "cmValue": 10}
    assert api.invoke("image:getScale", image_id) == {"success": True, "scale": None}
    assert api.invoke("image:saveScale", image_id, scale)["success"]
    got = api.invoke("image:getScale", image_id)["scale"]
    assert got == {k: float(v) for k, v in scale.items()}
    assert api.invoke("image:clearScale", image_id)["success"]
    assert api.invoke("image:getScale", image_id)["scale"] is None


def test_bad_scale_payload_fails_cleanly(api, image_id):
    result = api.invoke("image:saveScale", image_id, {"pxPerCm": 3})
    assert result["success"] is False


def test_polygon_upsert_is_keyed_by_leaf(api, image_id):
    verts = [{"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 10, "y": 10}]
    first = api.invoke("polygon:upsert", image_id, "01", verts)["polygonId"]
    again = api.invoke("polygon:upsert", image_id, "01", verts[:2] + [{"x": 5, "y": 9}])["polygonId"]
    second = api.invoke("polygon:upsert", image_id, "02", verts)["polygonId"]
    assert first == again
    assert second != first

    polygons = api.invoke("polygon:getForImage", image_id)["polygons"]
    assert [(p["leafId"], p["imageId"]) for p in polygons] == [("01", image_id), ("02", image_id)]
    assert polygons[0]["vertices"][2] == {"x": 5.0, "y": 9.0}

    assert api.invoke("polygon:delete", first)["success"]
    assert [p["leafId"] for p in api.invoke("polygon:getForImage", image_id)["polygons"]] == ["02"]


def test_cell_procedures(api, image_id):
    verts = [{"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 10, "y": 10}]
    pid = api.invoke("polygon:upsert", image_id, "01", verts)["polygonId"]
    assert api.invoke("cell:upsert", pid, 2, 3, "present", "ana")["success"]
    cells = api.invoke("cell:getForPolygon", pid)["cells"]
    assert len(cells) == 1
    assert cells[0]["gridRow"] == 2 and cells[0]["gridCol"] == 3
    assert cells[0]["category"] == "present"
    assert cells[0]["polygonId"] == pid

    bad = api.invoke("cell:upsert", pid, 0, 0, "maybe", "ana")
    assert bad["success"] is False
    assert "maybe" in bad["error"]


def test_image_flags(api, image_id):
    assert api.invoke("image:setSheetId", image_id, "S-7")["success"]
    assert api.invoke("image:markCompleted", image_id, True)["success"]
    img = [i for i in api.invoke("image:list")["images"] if i["id"] == image_id][0]
    assert img["sheetId"] == "S-7"
    assert img["completed"] is True


def test_app_state(api):
    assert api.invoke("appState:get", "last_image") == {"success": True, "value": None}
    api.invoke("appState:set", "last_image", "2")
    assert api.invoke("appState:get", "last_image")["value"] == "2"


def test_procedure_names():
    names = HostApi().procedures
    assert "polygon:upsert" in names
    assert names == sorted(names)
