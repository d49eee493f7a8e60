import math

import pytest

from herbivory_counter.calibration import (
    ScaleTool,
    ScaleValueError,
    compute_scale_value,
    create_scale_line,
    parse_cm_value,
    restore_from_scale_data,
    scale_data_from,
)
from herbivory_counter.data_model import Point


def draw(tool, start, end):
    tool.pointer_down(start)
    tool.pointer_move(end)
    tool.pointer_up(end)


@pytest.fixture
def completed():
    return []


@pytest.fixture
def tool(completed):
    return ScaleTool(on_line_complete=completed.append)


def test_short_release_does_not_commit(tool, completed):
    draw(tool, Point(0, 0), Point(6, 8))
    assert tool.line is None
    assert completed == []


def test_long_release_commits(tool, completed):
    draw(tool, Point(100, 200), Point(400, 200))
    assert tool.line.is_complete
    assert tool.line.length == pytest.approx(300)
    assert completed == [tool.line]


def test_move_shows_provisional_line(tool):
    tool.pointer_down(Point(0, 0))
    tool.pointer_move(Point(50, 0))
    assert tool.is_drawing
    assert tool.line is not None
    assert not tool.line.is_complete
    assert tool.line.end == Point(50, 0)


def test_drag_endpoint_moves_only_that_end(tool, completed):
    draw(tool, Point(0, 0), Point(100, 0))
    tool.pointer_down(Point(110, 5))
    assert tool.line.is_dragging
    assert tool.line.drag_target == "end"
    tool.pointer_move(Point(200, 0))
    tool.pointer_up(Point(200, 0))
    assert tool.line.start == Point(0, 0)
    assert tool.line.end == Point(200, 0)
    assert not tool.line.is_dragging
    assert len(completed) == 2


def test_press_away_from_endpoints_starts_over(tool):
    draw(tool, Point(0, 0), Point(100, 0))
    tool.pointer_down(Point(50, 50))
    assert tool.line is None
    tool.pointer_up(Point(52, 50))
    assert tool.line is None


def test_leave_cancels_drawing(tool, completed):
    tool.pointer_down(Point(0, 0))
    tool.pointer_move(Point(80, 0))
    tool.pointer_leave()
    assert tool.line is None
    assert not tool.is_drawing
    assert completed == []


def test_leave_commits_endpoint_drag(tool, completed):
    draw(tool, Point(0, 0), Point(100, 0))
    tool.pointer_down(Point(0, 0))
    tool.pointer_move(Point(-20, 0))
    tool.pointer_leave()
    assert tool.line.start == Point(-20, 0)
    assert not tool.line.is_dragging
    assert len(completed) == 2


def test_cancel_drops_provisional_line_silently(tool, completed):
    tool.pointer_down(Point(0, 0))
    tool.pointer_move(Point(80, 0))
    tool.cancel()
    assert tool.line is None
    assert completed == []


def test_clear_line(tool):
    draw(tool, Point(0, 0), Point(100, 0))
    tool.clear_line()
    assert tool.line is None
    assert tool.hit_endpoint(Point(0, 0)) is None


@pytest.mark.parametrize("raw, expected", [("10", 10.0), (" 2.5 ", 2.5), (3, 3.0), (0.5, 0.5)])
def test_parse_cm_value(raw, expected):
    assert parse_cm_value(raw) == expected


@pytest.mark.parametrize("raw", ["", "  ", "abc", "0", "-5", "inf", "nan", None, True, math.inf])
def test_parse_cm_value_rejects(raw):
    with pytest.raises(ScaleValueError):
        parse_cm_value(raw)


def test_compute_scale_value():
    line = create_scale_line(Point(100, 200), Point(400, 200))
    value = compute_scale_value(line, "10")
    assert value.px_per_cm == pytest.approx(30)
    assert value.cm_value == 10
    assert value.line_length == pytest.approx(300)


def test_compute_scale_value_needs_a_complete_line():
    with pytest.raises(ScaleValueError):
        compute_scale_value(None, 10)


def test_restore_round_trip():
    line = create_scale_line(Point(100, 200), Point(400, 200))
    data = scale_data_from(line, compute_scale_value(line, 10))
    restored_line, value = restore_from_scale_data(data)
    assert restored_line == line
    assert restored_line.is_complete
    assert value.px_per_cm == pytest.approx(30)
