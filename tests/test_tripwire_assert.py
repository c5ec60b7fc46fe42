import pytest
from tripwire.tripwire_assert import add_assert_func, add_assert_funcs, assert_, create_assert
from tripwire.tripwire_config import assert_config
from tripwire.tripwire_errors import AssertionFailure, AssertionFatal, TripwireError


@pytest.fixture(autouse=True)
def reset_config():
    yield
    assert_config.reset()


def _raise_value_error():
    raise ValueError("bad")


class Counter:
    def __init__(self):
        self.count = 0

    def bump(self):
        self.count += 1


def is_answer(scope, eval_msg=None):
    scope.context.eval(scope.context.value == 42, eval_msg or "expected {value} to be the answer")
    return scope.that


# --- Calling the assert object ---

def test_call():
    assert_(True)
    assert_(1, "never")


def test_call_failure():
    with pytest.raises(AssertionFailure) as excinfo:
        assert_(False, "boom")
    assert excinfo.value.message == "boom"

    with pytest.raises(AssertionFailure) as excinfo:
        assert_(0)
    assert excinfo.value.message == "assertion failure"
    assert not isinstance(excinfo.value, AssertionFatal)

    with pytest.raises(AssertionFailure) as excinfo:
        assert_(None, lambda: "lazy")
    assert excinfo.value.message == "lazy"


def test_call_reports_through_context():
    with pytest.raises(AssertionFailure) as excinfo:
        assert_([], "empty {value}")
    err = excinfo.value
    assert err.message == "empty []"
    assert err.details["actual"] == []
    assert "in test_call_reports_through_context\n" in err.stack
    assert assert_.last_context.value == []

    assert_("x")
    assert assert_.last_context.value == "x"


def test_call_uses_default_message():
    assert_config.def_assert_msg = "custom failure"
    with pytest.raises(AssertionFailure) as excinfo:
        assert_(False)
    assert excinfo.value.message == "custom failure"


# --- Named predicates ---

# Test cases: (id, assertion)
PASSING_CASES = [
    ("ok", lambda: assert_.ok(1)),
    ("is_ok", lambda: assert_.is_ok("x")),
    ("is_not_ok", lambda: assert_.is_not_ok(0)),
    ("equal", lambda: assert_.equal(1, 1)),
    ("equals", lambda: assert_.equals("a", "a")),
    ("not_equal", lambda: assert_.not_equal(1, 2)),
    ("strict_equal", lambda: assert_.strict_equal(1, 1)),
    ("not_strict_equal", lambda: assert_.not_strict_equal(1, 1.0)),
    ("deep_equal", lambda: assert_.deep_equal({"a": [1]}, {"a": [1]})),
    ("not_deep_equal", lambda: assert_.not_deep_equal({"a": [1]}, {"a": [2]})),
    ("deep_strict_equal", lambda: assert_.deep_strict_equal([1], [1])),
    ("is_true", lambda: assert_.is_true(True)),
    ("is_not_true", lambda: assert_.is_not_true(1)),
    ("is_false", lambda: assert_.is_false(False)),
    ("is_none", lambda: assert_.is_none(None)),
    ("is_not_none", lambda: assert_.is_not_none(0)),
    ("exists", lambda: assert_.exists(0)),
    ("not_exists", lambda: assert_.not_exists(None)),
    ("is_empty", lambda: assert_.is_empty([])),
    ("is_not_empty", lambda: assert_.is_not_empty("a")),
    ("is_string", lambda: assert_.is_string("a")),
    ("is_not_string", lambda: assert_.is_not_string(1)),
    ("is_number", lambda: assert_.is_number(1.5)),
    ("is_not_number", lambda: assert_.is_not_number("1")),
    ("is_boolean", lambda: assert_.is_boolean(False)),
    ("is_array", lambda: assert_.is_array([])),
    ("is_not_array", lambda: assert_.is_not_array({})),
    ("is_object", lambda: assert_.is_object({})),
    ("is_plain_object", lambda: assert_.is_plain_object({})),
    ("is_function", lambda: assert_.is_function(len)),
    ("is_not_function", lambda: assert_.is_not_function(1)),
    ("is_error", lambda: assert_.is_error(ValueError())),
    ("is_iterable", lambda: assert_.is_iterable("abc")),
    ("is_nan", lambda: assert_.is_nan(float("nan"))),
    ("is_finite", lambda: assert_.is_finite(1)),
    ("is_not_finite", lambda: assert_.is_not_finite(float("inf"))),
    ("type_of", lambda: assert_.type_of(1, "int")),
    ("is_instance_of", lambda: assert_.is_instance_of(1, int)),
    ("is_not_instance_of", lambda: assert_.is_not_instance_of(1, str)),
    ("one_of", lambda: assert_.one_of(1, [1, 2])),
    ("not_one_of", lambda: assert_.not_one_of(3, [1, 2])),
    ("include", lambda: assert_.include([1, 2], 2)),
    ("includes", lambda: assert_.includes("abc", "b")),
    ("not_include", lambda: assert_.not_include([1], 2)),
    ("deep_include", lambda: assert_.deep_include([{"a": 1}], {"a": 1})),
    ("not_deep_include", lambda: assert_.not_deep_include([{"a": 1}], {"a": 2})),
    ("throws", lambda: assert_.throws(_raise_value_error, ValueError)),
    ("throws_with_message", lambda: assert_.throws(_raise_value_error, ValueError, "bad")),
    ("does_not_throw", lambda: assert_.does_not_throw(lambda: None)),
    ("match", lambda: assert_.match("abc", r"b")),
    ("not_match", lambda: assert_.not_match("abc", r"z")),
    ("has_property", lambda: assert_.has_property({"a": 1}, "a")),
    ("has_property_value", lambda: assert_.has_property({"a": 1}, "a", 1)),
    ("not_has_property", lambda: assert_.not_has_property({"a": 1}, "b")),
    ("has_own_property", lambda: assert_.has_own_property(Counter(), "count")),
    ("has_deep_property", lambda: assert_.has_deep_property({"a": [1]}, "a", [1])),
    ("has_all_keys", lambda: assert_.has_all_keys({"a": 1, "b": 2}, ["a", "b"])),
    ("has_any_keys", lambda: assert_.has_any_keys({"a": 1}, ["a", "z"])),
    ("is_above", lambda: assert_.is_above(2, 1)),
    ("is_not_above", lambda: assert_.is_not_above(1, 2)),
    ("is_at_least", lambda: assert_.is_at_least(2, 2)),
    ("is_below", lambda: assert_.is_below(1, 2)),
    ("is_at_most", lambda: assert_.is_at_most(2, 2)),
    ("is_within", lambda: assert_.is_within(3, 1, 5)),
    ("is_not_within", lambda: assert_.is_not_within(9, 1, 5)),
    ("close_to", lambda: assert_.close_to(1.05, 1, 0.1)),
    ("approximately", lambda: assert_.approximately(0.99, 1, 0.1)),
    ("length_of", lambda: assert_.length_of([1, 2], 2)),
    ("size_of", lambda: assert_.size_of("ab", 2)),
    ("not_length_of", lambda: assert_.not_length_of([1], 2)),
]


@pytest.mark.parametrize(
    "test_id, assertion",
    PASSING_CASES,
    ids=[t[0] for t in PASSING_CASES]
)
def test_passing_predicates(test_id, assertion):
    assertion()


# Test cases: (id, assertion, expected_message)
FAILING_CASES = [
    ("equal", lambda: assert_.equal(1, 2), "expected 1 to equal 2"),
    ("equal_with_msg", lambda: assert_.equal(1, 2, "values"), "values: expected 1 to equal 2"),
    ("equals_alias", lambda: assert_.equals(1, 2), "expected 1 to equal 2"),
    ("not_equal", lambda: assert_.not_equal(1, 1), "not expected 1 to equal 1"),
    ("is_ok", lambda: assert_.is_ok(0, "zero"), "zero: expected 0 to be truthy"),
    ("is_not_string", lambda: assert_.is_not_string("a"), 'not expected "a" to be a string'),
    ("is_none", lambda: assert_.is_none(1), "expected 1 to be None"),
    ("include", lambda: assert_.include([1], 2), "expected [1] to include 2"),
    ("is_above", lambda: assert_.is_above(1, 2, "size"), "size: expected 1 to be above 2"),
    ("does_not_throw", lambda: assert_.does_not_throw(_raise_value_error), None),
    ("has_all_keys", lambda: assert_.has_all_keys({"a": 1}, ["a", "b"]), None),
    ("fail", lambda: assert_.fail("boom"), "boom: assertion failure"),
]


@pytest.mark.parametrize(
    "test_id, assertion, expected",
    FAILING_CASES,
    ids=[t[0] for t in FAILING_CASES]
)
def test_failing_predicates(test_id, assertion, expected):
    with pytest.raises(AssertionFailure) as excinfo:
        assertion()
    assert not isinstance(excinfo.value, AssertionFatal)
    if expected is not None:
        assert excinfo.value.message == expected


def test_fatal():
    with pytest.raises(AssertionFatal) as excinfo:
        assert_.fatal("stop")
    assert excinfo.value.message == "stop: fatal assertion failure"

    with pytest.raises(AssertionFatal):
        assert_.is_above("a", 1)


def test_change_predicates():
    counter = Counter()
    assert_.changes(counter.bump, counter, "count")
    assert_.increases(counter.bump, counter, "count")
    assert_.increases_by(counter.bump, counter, "count", 1)
    assert_.changes_by(counter.bump, lambda: counter.count, 1)
    assert_.does_not_change(lambda: None, counter, "count")
    with pytest.raises(AssertionFailure):
        assert_.decreases(counter.bump, counter, "count")


def test_last_context():
    assert_.equal(1, 1)
    context = assert_.last_context
    assert context.value == 1
    assert context.get("op_path")[0] == "equal()"
    assert context.org_args == [1, 1]


def test_failure_stack_starts_at_caller():
    with pytest.raises(AssertionFailure) as excinfo:
        assert_.equal(1, 2)
    err = excinfo.value
    assert "in _assert_func\n" not in err.stack
    assert "in test_failure_stack_starts_at_caller\n" in err.stack
    assert "in _assert_func\n" in err.full_stack


def test_alias_stack_starts_at_caller():
    with pytest.raises(AssertionFailure) as excinfo:
        assert_.equals(1, 2)
    err = excinfo.value
    assert "in _alias_proxy_func\n" not in err.stack
    assert "in test_alias_stack_starts_at_caller\n" in err.stack


def test_full_stack_option():
    assert_config.full_stack = True
    with pytest.raises(AssertionFailure) as excinfo:
        assert_.equal(1, 2)
    assert excinfo.value.stack == excinfo.value.full_stack


def test_def_assert_msg_option():
    assert_config.def_assert_msg = "custom failure"
    with pytest.raises(AssertionFailure) as excinfo:
        assert_.fail()
    assert excinfo.value.message == "custom failure"


# --- Custom assertion functions ---

def test_add_custom_functions():
    target = create_assert()
    add_assert_funcs(target, {
        "is_answer": is_answer,
        "is_answer_too": {"alias": "is_answer"},
        "not_str": "not.is.string",
        "not_str_steps": ["not", "is", "string"],
    })

    target.is_answer(42)
    target.is_answer_too(42)
    target.not_str(1)
    target.not_str_steps(1)

    with pytest.raises(AssertionFailure) as excinfo:
        target.is_answer(41, "hm")
    assert excinfo.value.message == "hm: expected 41 to be the answer"

    with pytest.raises(AssertionFailure):
        target.not_str("a")

    # The shared assert object is untouched
    assert not hasattr(assert_, "is_answer")


def test_add_assert_func_with_message_index():
    target = create_assert()

    def between(scope, low, high):
        scope.context.set("low", low).set("high", high)
        scope.context.eval(low <= scope.context.value <= high, "expected {value} between {low} and {high}")
        return scope.that

    add_assert_func(target, "between", {"scope_fn": between, "n_args": 3, "m_idx": 0})
    target.between("range", 5, 1, 10)
    with pytest.raises(AssertionFailure) as excinfo:
        target.between("range", 50, 1, 10)
    assert excinfo.value.message == "range: expected 50 between 1 and 10"


@pytest.mark.parametrize("definition", [
    [],
    None,
    {"n_args": 1},
    5,
])
def test_invalid_custom_definitions(definition):
    with pytest.raises(TripwireError):
        add_assert_funcs(create_assert(), {"bad": definition})


def test_invalid_custom_names():
    with pytest.raises(TripwireError):
        add_assert_funcs(create_assert(), {"_bad": is_answer})
