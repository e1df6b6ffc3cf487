"""
Tests for traceback splitting used by the top-level error handler.
"""
from canvas_sketch_cli.output import split_traceback


def _raise():
    raise ValueError("first line\nsecond line")


def test_split_traceback_separates_message_from_frames():
    try:
        _raise()
    except ValueError as e:
        message, trace = split_traceback(e)

    assert message == ["ValueError: first line", "second line"]
    assert any("_raise" in line for line in trace)
    assert "ValueError: first line" not in trace


def test_split_traceback_without_traceback():
    message, trace = split_traceback(KeyError("x"))
    assert message == ["KeyError: 'x'"]
    assert trace == []
