import inspect

import pytest
from tripwire.tripwire_adapters import (
    create_eval_adapter, create_expr_adapter, create_not_adapter, do_await, parse_expr,
)
from tripwire.tripwire_context import create_context
from tripwire.tripwire_errors import AssertionFailure, TripwireError
from tripwire.tripwire_funcs import equals_func
from tripwire.tripwire_scope import create_assert_scope


def make_scope(value, config=None):
    return create_assert_scope(create_context(value, config=config))


def recording_scope(seen, value=1):
    scope = make_scope(value)

    def record(scope, arg=None):
        seen.append(arg)
        return scope.that

    scope.create_operation({"record": {"scope_fn": record}}, scope.that)
    return scope


# --- Parsing ---

@pytest.mark.parametrize("expr", [
    "a(b(c))",
    "a(b",
    "a)b",
    "(b)",
    "a..b",
    "a(b)c",
    "",
])
def test_invalid_expressions(expr):
    with pytest.raises(TripwireError, match="Invalid expression"):
        parse_expr(expr)


def test_parse_step_arguments():
    steps = parse_expr("not.a({0}, name, 'lit', {text}, 3.5, 1)")
    assert [step.name for step in steps] == ["not", "a"]
    assert steps[0].args is None

    args = steps[1].args
    assert args[0].idx == 0
    assert args[1].named == "name"
    assert args[2].value == "lit"
    assert args[3].value == "text"
    assert args[4].value == 3.5
    assert args[5].idx == 1


def test_parse_step_list():
    steps = parse_expr(["not", "is", "string"])
    assert [step.name for step in steps] == ["not", "is", "string"]


def test_parse_empty_call():
    assert parse_expr("a()")[0].args == []


def test_invalid_expression_raised_on_creation():
    with pytest.raises(TripwireError):
        create_expr_adapter("a(b(c))")


# --- Expression adapter ---

@pytest.mark.parametrize("expr", ["record({0})", "record(0)"])
def test_index_argument(expr):
    seen = []
    scope = recording_scope(seen)
    create_expr_adapter(expr)(scope, 42)
    assert seen == [42]


def test_named_and_literal_arguments():
    seen = []
    scope = recording_scope(seen)
    scope.context.set("who", "bob")

    create_expr_adapter("record(who)")(scope)
    create_expr_adapter("record('hi')")(scope)
    create_expr_adapter("record(missing)")(scope)
    create_expr_adapter("record({5})")(scope, 1)

    assert seen == ["bob", "hi", None, None]


def test_expression_runs_operations():
    adapter = create_expr_adapter("not.is.string")
    adapter(make_scope(1))
    with pytest.raises(AssertionFailure) as excinfo:
        adapter(make_scope("x"))
    assert excinfo.value.message == 'not expected "x" to be a string'


def test_expression_with_scope_fn():
    adapter = create_expr_adapter("not", equals_func)
    adapter(make_scope(1), 2)
    with pytest.raises(AssertionFailure) as excinfo:
        adapter(make_scope(1), 1)
    assert excinfo.value.message == "not expected 1 to equal 1"
    assert adapter.__name__ == "equals_func"


def test_expression_passes_call_args_to_last_step():
    adapter = create_expr_adapter("to.equal")
    adapter(make_scope(3), 3)
    with pytest.raises(AssertionFailure):
        adapter(make_scope(3), 4)


def test_unknown_step():
    adapter = create_expr_adapter("not.nope")
    with pytest.raises(TripwireError) as excinfo:
        adapter(make_scope(1))
    assert str(excinfo.value).startswith("1 Invalid step: nope for [not->nope] available steps: [")
    assert "equal" in excinfo.value.details["actual"]


def test_step_with_args_must_be_callable():
    with pytest.raises(TripwireError, match='expected a function for "to"'):
        create_expr_adapter("to(1)")(make_scope(1), 1)


def test_fail_step():
    with pytest.raises(AssertionFailure) as excinfo:
        create_expr_adapter("fail")(make_scope(1), "boom")
    assert excinfo.value.message == "boom"


def test_verbose_records_expression():
    scope = make_scope(1, {"is_verbose": True})
    create_expr_adapter("ok")(scope)
    path = scope.context.get("op_path")
    assert '[["ok"]]' in path
    assert "ok()" in path


def test_verbose_op_path_is_not_finalized():
    config = {"is_verbose": True, "format": {"finalize": True, "finalize_fn": lambda text: text + "!"}}
    scope = make_scope(1, config)
    create_expr_adapter("ok")(scope)
    path = scope.context.get("op_path")
    assert any(entry.startswith("=>[[r:") for entry in path)
    assert not any(entry.endswith("!") for entry in path)

    with pytest.raises(TripwireError) as excinfo:
        create_expr_adapter("nope")(make_scope(1, config))
    assert not excinfo.value.message.endswith("!")


# --- Eval and not adapters ---

def test_eval_adapter():
    adapter = create_eval_adapter(lambda actual, minimum: actual >= minimum, "too small")
    adapter(make_scope(10), 5)
    with pytest.raises(AssertionFailure) as excinfo:
        adapter(make_scope(1), 5)
    assert excinfo.value.message == "too small"


def test_eval_adapter_name():
    assert create_eval_adapter(lambda actual: True, func_name="at_least").__name__ == "at_least"


def test_not_adapter():
    adapter = create_not_adapter(equals_func)
    adapter(make_scope(1), 2)
    with pytest.raises(AssertionFailure) as excinfo:
        adapter(make_scope(1), 1)
    assert excinfo.value.message == "not expected 1 to equal 1"


# --- do_await ---

def test_do_await_runs_immediately():
    assert do_await(2, lambda value: value * 2) == 4


@pytest.mark.asyncio
async def test_do_await_awaits_coroutines():
    async def _value():
        return 3

    result = do_await(_value(), lambda value: value + 1)
    assert inspect.iscoroutine(result)
    assert await result == 4


@pytest.mark.asyncio
async def test_do_await_awaits_callback_result():
    async def _value():
        return 3

    async def _double(value):
        return value * 2

    assert await do_await(_value(), _double) == 6
