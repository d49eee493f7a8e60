import pytest

from herbivory_counter.api import HostApi
from herbivory_counter.data_model import Point
from herbivory_counter.persistence import PersistenceAdapter


@pytest.fixture
def square():
    return [Point(0, 0), Point(100, 0), Point(100, 100), Point(0, 100)]


@pytest.fixture
def image_folder(tmp_path):
    for name in ("leaf_b.jpg", "leaf_a.PNG", "notes.txt", "scan.heic"):
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "inner.jpg").write_bytes(b"")
    return tmp_path


@pytest.fixture
def api(image_folder):
    host = HostApi()
    result = host.invoke("folder:open", str(image_folder))
    assert result["success"], result
    yield host
    host.close()


@pytest.fixture
def image_id(api):
    return api.invoke("image:list")["images"][0]["id"]


@pytest.fixture
def adapter(api):
    return PersistenceAdapter(api)
