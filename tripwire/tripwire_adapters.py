"""
Adapters that turn other shapes of check into scope functions.

- create_expr_adapter: runs a dotted operation path such as "not.is.string".
- create_eval_adapter: wraps a plain predicate `fn(actual, *args) -> bool`.
- create_not_adapter: negates any scope function.
- do_await: continues with a value now, or after awaiting it.
"""
import inspect
import re
from typing import Any, Callable, List, Optional, Sequence, Union

from tripwire.tripwire_datatypes import MsgSource, get_fn_name
from tripwire.tripwire_errors import TripwireError
from tripwire.tripwire_printer import format_value


def do_await(value: Any, callback: Callable[[Any], Any]) -> Any:
    """
    Runs `callback(value)` immediately for plain values. For awaitables a
    coroutine is returned that awaits the value and then runs the callback.
    """
    if inspect.isawaitable(value):
        async def _await_then():
            result = callback(await value)
            if inspect.isawaitable(result):
                result = await result
            return result
        return _await_then()
    return callback(value)


# =================================================================
# Expression adapter
# =================================================================

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?(\d+\.\d*|\.\d+)([eE][-+]?\d+)?$")
_IDENT_RE = re.compile(r"^[A-Za-z_$][\w$]*$")


class StepArg:
    """One argument of an expression step: a positional index, a named fact or a literal."""
    __slots__ = ("idx", "named", "value")

    def __init__(self, idx: Optional[int] = None, named: Optional[str] = None, value: Any = None):
        self.idx = idx
        self.named = named
        self.value = value

    def resolve(self, scope, call_args: Sequence[Any]) -> Any:
        if self.idx is not None:
            return call_args[self.idx] if -len(call_args) <= self.idx < len(call_args) else None
        if self.named is not None:
            return scope.context.get(self.named)
        return self.value

    def __repr__(self) -> str:
        if self.idx is not None:
            return f"StepArg(idx={self.idx})"
        if self.named is not None:
            return f"StepArg(named={self.named!r})"
        return f"StepArg(value={self.value!r})"


class Step:
    __slots__ = ("name", "args")

    def __init__(self, name: str, args: Optional[List[StepArg]] = None):
        self.name = name
        self.args = args

    def __repr__(self) -> str:
        return f"Step({self.name!r}, {self.args!r})"


def _invalid(expr: Union[str, Sequence[str]]) -> TripwireError:
    if not isinstance(expr, str):
        expr = ".".join(expr)
    return TripwireError("Invalid expression: " + expr)


def _split_steps(expr: str) -> List[str]:
    """Splits on `.` outside parentheses, rejecting nested or unbalanced ones."""
    steps = []
    depth = 0
    current = []
    for ch in expr:
        if ch == "(":
            depth += 1
            if depth > 1:
                raise _invalid(expr)
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise _invalid(expr)
        elif ch == "." and depth == 0:
            steps.append("".join(current))
            current = []
            continue
        current.append(ch)
    if depth != 0:
        raise _invalid(expr)
    steps.append("".join(current))
    return steps


def _parse_literal(token: str) -> Any:
    if _INT_RE.match(token):
        return int(token)
    if _FLOAT_RE.match(token):
        return float(token)
    return token


def _parse_step_arg(arg: str, full_expr) -> StepArg:
    arg = arg.strip()
    if arg.startswith("{") and arg.endswith("}"):
        body = arg[1:-1]
        if "{" in body or "}" in body:
            raise _invalid(full_expr)
        if _INT_RE.match(body.strip()):
            return StepArg(idx=int(body))
        return StepArg(value=body)
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in ("'", '"'):
        return StepArg(value=arg[1:-1])
    if _INT_RE.match(arg):
        return StepArg(idx=int(arg))
    if _IDENT_RE.match(arg):
        return StepArg(named=arg)
    return StepArg(value=_parse_literal(arg))


def _parse_step(step: str, full_expr) -> Step:
    step = step.strip()
    open_idx = step.find("(")
    if open_idx == -1:
        if ")" in step or not step:
            raise _invalid(full_expr)
        return Step(step)

    if not step.endswith(")") or step.count("(") != 1 or step.count(")") != 1:
        raise _invalid(full_expr)
    name = step[:open_idx].strip()
    if not name:
        raise _invalid(full_expr)
    body = step[open_idx + 1:-1]
    args = [_parse_step_arg(arg, full_expr) for arg in body.split(",")] if body.strip() else []
    return Step(name, args)


def parse_expr(expr: Union[str, Sequence[str]]) -> List[Step]:
    """Parses a dotted expression (or a list of step strings) into steps."""
    if isinstance(expr, str):
        raw_steps = _split_steps(expr)
    else:
        raw_steps = []
        for item in expr:
            if not isinstance(item, str):
                raise _invalid([str(e) for e in expr])
            _split_steps(item)
            raw_steps.append(item)
    return [_parse_step(step, expr) for step in raw_steps]


def _available_steps(that: Any) -> List[str]:
    # Imported here, the scope module builds on this one
    from tripwire.tripwire_scope import AssertInst

    if isinstance(that, AssertInst):
        return that.op_names() + ["fail", "fatal"]
    return [name for name in dir(that) if not name.startswith("_")]


def _is_callable(value: Any) -> bool:
    from tripwire.tripwire_scope import is_callable_step

    return is_callable_step(value)


def _has_step(that: Any, name: str) -> bool:
    from tripwire.tripwire_scope import AssertInst

    if isinstance(that, AssertInst):
        return that.has_op(name) or name in ("fail", "fatal")
    return not name.startswith("_") and hasattr(that, name)


def create_expr_adapter(expr: Union[str, Sequence[str]], scope_fn: Optional[Callable[..., Any]] = None):
    """
    Creates a scope function that walks `expr` over the chain and then runs
    `scope_fn` (or calls the final chain value) with the call arguments.
    """
    steps = parse_expr(expr) if expr else []
    expr_text = expr if isinstance(expr, str) else ".".join(expr or [])
    names = [step.name for step in steps]

    def _expr_fn(scope, *args):
        context = scope.context
        context.stack_fn.push(_expr_fn)
        if context.opts.is_verbose:
            context.set_op(f'[["{expr_text}"]]')
        return _run_step(scope, 0, args)

    def _run_step(scope, idx: int, call_args):
        if idx >= len(steps):
            return _process_fn(scope, call_args)

        context = scope.context
        step = steps[idx]
        that = scope.that
        if not _has_step(that, step.name):
            available = _available_steps(that)
            raise TripwireError(
                f"{idx} Invalid step: {step.name} for [{'->'.join(names)}] "
                f"available steps: [{';'.join(available)}] - {format_value(context.opts, that, finalize=False)}",
                {"expected": step.name, "actual": ";".join(available)},
                context.stack_fn)

        step_args = [arg.resolve(scope, call_args) for arg in step.args] if step.args is not None else None

        def _next(step_result):
            if step_args is not None:
                if not _is_callable(step_result):
                    raise TripwireError(
                        context.get_message(f'expected a function for "{step.name}" but found {step_result!r}'),
                        context.get_details(),
                        context.stack_fn)
                step_result = step_result(*step_args)
            return do_await(step_result, lambda result: _after_step(scope, idx, result, call_args))

        return do_await(getattr(that, step.name), _next)

    def _after_step(scope, idx, result, call_args):
        scope.that = result
        return _run_step(scope, idx + 1, call_args)

    def _process_fn(scope, call_args):
        if scope_fn is not None:
            if scope.context.opts.is_verbose:
                scope.context.set_op(f"[[p:{get_fn_name(scope_fn)}]]")
            result = scope.exec(scope_fn, call_args)
        elif _is_callable(scope.that):
            result = scope.that(*call_args)
        else:
            return scope.that
        if scope.context.opts.is_verbose:
            scope.context.set_op(f"=>[[r:{format_value(scope.context.opts, result, finalize=False)}]]")
        return result

    _expr_fn.__name__ = get_fn_name(scope_fn, expr_text) if scope_fn is not None else expr_text
    return _expr_fn


# =================================================================
# Eval and not adapters
# =================================================================

def create_eval_adapter(eval_fn: Callable[..., Any], eval_msg: MsgSource = None,
                        func_name: Optional[str] = None):
    """Wraps `eval_fn(actual, *args) -> bool` as a scope function."""
    name = func_name or get_fn_name(eval_fn)

    def _eval_fn(scope, *args):
        context = scope.context
        context.stack_fn.push(_eval_fn)
        if context.opts.is_verbose:
            context.set_op(f"[[{name}]]")
        context.eval(eval_fn(context.value, *args), eval_msg)
        return scope.that

    _eval_fn.__name__ = name
    return _eval_fn


def create_not_adapter(scope_fn: Callable[..., Any]):
    """Wraps a scope function so that its outcome is negated."""

    def _not_fn(scope, *args):
        # Imported here, the operations module builds on the adapters
        from tripwire.tripwire_ops import not_op

        context = scope.context
        context.stack_fn.push(_not_fn)
        if context.opts.is_verbose:
            context.set_op("[[not]]")
        not_op(scope)
        return scope.exec(scope_fn, args)

    _not_fn.__name__ = get_fn_name(scope_fn)
    return _not_fn
