import functools

import pytest
from tripwire.tripwire_errors import AssertionFailure, AssertionFatal, TripwireError
from tripwire.tripwire_stack import StackTracker, capture_stack


def first():
    pass


def second():
    pass


def third():
    pass


def _make_closure():
    def inner():
        pass
    return inner


# --- StackTracker ---

def test_push_deduplicates():
    tracker = StackTracker().push(first, second, first)
    assert list(tracker) == [first, second]
    assert len(tracker) == 2
    assert tracker[0] is first


def test_push_ignores_none():
    assert list(StackTracker().push(None, first)) == [first]


def test_unshift_moves_to_front():
    tracker = StackTracker().push(first, second)
    tracker.unshift(second)
    assert list(tracker) == [second, first]
    tracker.unshift(third)
    assert list(tracker) == [third, second, first]


def test_closures_collapse_by_code():
    tracker = StackTracker().push(_make_closure(), _make_closure())
    assert len(tracker) == 1


def test_bound_methods_and_partials_share_code():
    class Thing:
        def run(self):
            pass

    tracker = StackTracker().push(Thing.run, Thing().run, functools.partial(first, 1), first)
    assert len(tracker) == 2


def test_child_is_independent():
    tracker = StackTracker().push(first)
    child = tracker.child()
    child.push(second)
    assert list(tracker) == [first]
    assert list(child) == [first, second]


def test_capture_stack_is_most_recent_last():
    names = [frame.name for frame in capture_stack()]
    assert names[-1] == "test_capture_stack_is_most_recent_last"
    assert "capture_stack" not in names


def _direct_capture():
    return capture_stack()


def test_capture_stack_starts_at_caller():
    names = [frame.name for frame in _direct_capture()]
    assert names[-2:] == ["test_capture_stack_starts_at_caller", "_direct_capture"]


def _outer_helper():
    return capture_stack([_outer_helper])


def test_capture_stack_cuts_tracked_frames():
    names = [frame.name for frame in _outer_helper()]
    assert "_outer_helper" not in names
    assert "capture_stack" not in names
    assert names[-1] == "test_capture_stack_cuts_tracked_frames"


# --- Errors ---

def _raise_from_helper():
    raise TripwireError("helper failed", None, [_raise_from_helper])


def test_error_stack_hides_engine_frames():
    with pytest.raises(TripwireError) as excinfo:
        _raise_from_helper()

    err = excinfo.value
    assert "in _raise_from_helper\n" not in err.stack
    assert "in test_error_stack_hides_engine_frames\n" in err.stack
    assert "in _raise_from_helper\n" in err.full_stack
    assert "in __init__\n" in err.full_stack


def test_error_without_stack_start_keeps_full_stack():
    err = TripwireError("x")
    assert err.stack == err.full_stack


def test_error_str_includes_props():
    err = AssertionFailure("m", {"actual": 1, "op_path": ["a", "b"], "expected": 2, "show_diff": True})
    assert str(err) == 'm ::: running "a->b" with (1) and props: {"expected": 2}'
    assert err.message == "m"
    assert err.details["expected"] == 2
    assert err.name == "AssertionFailure"


def test_error_str_without_props():
    assert str(TripwireError("plain")) == "plain"


def test_error_str_with_cause():
    err = TripwireError("outer", inner_exception=ValueError("x"))
    assert str(err).endswith("\n\nCaused by: ValueError: x")


def test_error_props_with_unserializable_values():
    err = TripwireError("m", {"expected": object()})
    assert "and props: " in str(err)


def test_error_to_json():
    inner = AssertionFatal("inner")
    err = AssertionFailure("m", {"expected": 2}, inner_exception=inner)

    data = err.to_json()
    assert data["name"] == "AssertionFailure"
    assert data["message"] == "m"
    assert data["props"] == {"expected": 2}
    assert data["inner_exception"]["name"] == "AssertionFatal"
    assert "stack" not in data

    assert "stack" in err.to_json(stack=True)


def test_error_hierarchy():
    assert issubclass(TripwireError, AssertionError)
    assert issubclass(AssertionFailure, TripwireError)
    assert issubclass(AssertionFatal, AssertionFailure)
