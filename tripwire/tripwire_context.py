"""
Scope contexts: the fact store and message machinery behind an assertion chain.

A root context is created per assertion and owns the subject, the initial
message and the configuration. Modifiers such as `not` derive child contexts
that see the parent's facts, keep their own writes local, and may override
how messages are rendered and how results are evaluated.
"""
from typing import Any, Callable, Dict, Iterable, List, Mapping, NoReturn, Optional

from tripwire.tripwire_config import ConfigInst, assert_config
from tripwire.tripwire_datatypes import MsgSource, _dbg
from tripwire.tripwire_errors import AssertionFailure, AssertionFatal, TripwireError
from tripwire.tripwire_printer import finalize_text, format_value
from tripwire.tripwire_stack import StackTracker
from tripwire.tripwire_template import parse_token, render_template

OP_PATH = "op_path"
OPERATION = "operation"

OVERRIDABLE = ("get_message", "get_eval_message", "get_details", "eval", "fail", "fatal")


def _as_list(fns) -> List[Any]:
    if fns is None:
        return []
    if isinstance(fns, (list, tuple, StackTracker)):
        return list(fns)
    return [fns]


def _apply_token_op(op: Optional[str], value: Any, ctx: "ScopeContext") -> Optional[str]:
    if op is None:
        return format_value(ctx.opts, value, finalize=False)
    if op == "typeof":
        return type(value).__name__
    try:
        return str(len(value))
    except TypeError:
        return None


def resolve_message(ctx: "ScopeContext", msg: MsgSource) -> str:
    """Turns a message source into text, substituting `{token}` values from the details."""
    if callable(msg):
        try:
            msg = msg()
        except Exception as e:
            _dbg("message callback failed", type(e).__name__, e)
            msg = None
    message = msg if isinstance(msg, str) else ("" if msg is None else str(msg))
    if "{" not in message:
        return message

    details = ctx.get_details()

    def _resolve(body: str) -> Optional[str]:
        if body in details:
            return format_value(ctx.opts, details[body], finalize=False)
        name, op = parse_token(body)
        if name in details:
            value = details[name]
        elif name == "value":
            value = details.get("actual")
        elif name == "path":
            path = details.get(OP_PATH)
            if op is None:
                return " ".join(str(p) for p in path) if path else ""
            value = path
        else:
            return None
        try:
            return _apply_token_op(op, value, ctx)
        except Exception as e:
            _dbg("token render failed", body, type(e).__name__, e)
            return None

    return render_template(message, _resolve)


# =================================================================
# Base implementations, run with the effective (possibly child) context
# =================================================================

def _get_message(ctx: "ScopeContext", msg: MsgSource = None, skip_overrides: bool = False) -> str:
    init_msg = resolve_message(ctx, ctx.init_msg)
    message = ctx.get_eval_message(msg, skip_overrides)
    if init_msg:
        message = init_msg + (": " + message if message else "")
    return finalize_text(ctx.opts, message)


def _get_eval_message(ctx: "ScopeContext", msg: MsgSource = None, skip_overrides: bool = False) -> str:
    message = resolve_message(ctx, msg)
    if not message:
        path = ctx.get(OP_PATH)
        message = " ".join(str(p) for p in path) if path else ""
    return message


def _get_details(ctx: "ScopeContext") -> Dict[str, Any]:
    details = {
        "actual": ctx.value,
        "show_diff": ctx.opts.show_diff,
    }
    for key in ctx.keys():
        details[key] = ctx.get(key)
    return details


def _eval(ctx: "ScopeContext", expr: Any, msg: MsgSource = None, caused_by: Optional[BaseException] = None):
    if not expr:
        ctx.fail(msg, ctx.get_details(), ctx.stack_fn, caused_by)
    return ctx


def _stack_for(ctx: "ScopeContext", stack_start) -> Optional[StackTracker]:
    if ctx.opts.full_stack:
        return None
    return StackTracker(ctx.stack_fn).push(*_as_list(stack_start))


def _fail(ctx: "ScopeContext", msg: MsgSource = None, details: Optional[Dict[str, Any]] = None,
          stack_start=None, caused_by: Optional[BaseException] = None) -> NoReturn:
    raise AssertionFailure(
        ctx.get_message(msg),
        details or ctx.get_details(),
        _stack_for(ctx, stack_start),
        inner_exception=caused_by,
        opts=ctx.opts)


def _fatal(ctx: "ScopeContext", msg: MsgSource = None, details: Optional[Dict[str, Any]] = None,
           stack_start=None, caused_by: Optional[BaseException] = None) -> NoReturn:
    # Rendered without overrides so a negated chain reports the real precondition
    raise AssertionFatal(
        ctx.get_message(msg, True),
        details or ctx.get_details(),
        _stack_for(ctx, stack_start),
        inner_exception=caused_by,
        opts=ctx.opts)


_BASE_OPS: Dict[str, Callable[..., Any]] = {
    "get_message": _get_message,
    "get_eval_message": _get_eval_message,
    "get_details": _get_details,
    "eval": _eval,
    "fail": _fail,
    "fatal": _fatal,
}


class _OverrideProxy:
    """
    Routes one overridable operation of a child context. The override runs
    unless it is already executing for this context (so an override can call
    the same method to reach the inherited implementation) or the caller
    asked to skip overrides.
    """
    __slots__ = ("name", "inherited", "override", "calling")

    def __init__(self, name: str, inherited: Callable[..., Any], override: Optional[Callable[..., Any]] = None):
        self.name = name
        self.inherited = inherited
        self.override = override
        self.calling = False

    def __call__(self, ctx: "ScopeContext", *args):
        skip = self.name in ("get_message", "get_eval_message") and len(args) > 1 and bool(args[1])
        if self.override is not None and not self.calling and not skip:
            self.calling = True
            try:
                return self.override(ctx, *args)
            finally:
                self.calling = False
        return self.inherited(ctx, *args)


# =================================================================
# Contexts
# =================================================================

class ScopeContext:
    """Common surface of root and child contexts."""

    _ops: Dict[str, Callable[..., Any]]

    @property
    def value(self) -> Any:
        raise NotImplementedError

    @property
    def opts(self) -> ConfigInst:
        raise NotImplementedError

    @property
    def init_msg(self) -> MsgSource:
        raise NotImplementedError

    @property
    def org_args(self) -> Optional[List[Any]]:
        raise NotImplementedError

    @property
    def stack_fn(self) -> StackTracker:
        return self._stack_fn

    @property
    def parent(self) -> Optional["ScopeContext"]:
        return None

    def get(self, name: str) -> Any:
        raise NotImplementedError

    def set(self, name: str, value: Any) -> "ScopeContext":
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def new(self, value: Any, overrides: Optional[Mapping[str, Callable[..., Any]]] = None) -> "ScopeContext":
        """Creates a child context over `value`, wiring optional overrides."""
        return ChildContext(self, value, overrides)

    def set_op(self, name: str) -> "ScopeContext":
        """Records the current operation and appends it to the operation path."""
        self.set(OPERATION, name)
        path = self.get(OP_PATH)
        if path is None:
            path = []
            self.set(OP_PATH, path)
        path.append(name)
        return self

    def get_message(self, msg: MsgSource = None, skip_overrides: bool = False) -> str:
        return self._ops["get_message"](self, msg, skip_overrides)

    def get_eval_message(self, msg: MsgSource = None, skip_overrides: bool = False) -> str:
        return self._ops["get_eval_message"](self, msg, skip_overrides)

    def get_details(self) -> Dict[str, Any]:
        return self._ops["get_details"](self)

    def eval(self, expr: Any, msg: MsgSource = None, caused_by: Optional[BaseException] = None) -> "ScopeContext":
        return self._ops["eval"](self, expr, msg, caused_by)

    def fail(self, msg: MsgSource = None, details: Optional[Dict[str, Any]] = None,
             stack_start=None, caused_by: Optional[BaseException] = None) -> NoReturn:
        self._ops["fail"](self, msg, details, stack_start, caused_by)

    def fatal(self, msg: MsgSource = None, details: Optional[Dict[str, Any]] = None,
              stack_start=None, caused_by: Optional[BaseException] = None) -> NoReturn:
        self._ops["fatal"](self, msg, details, stack_start, caused_by)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} value={self.value!r} keys={self.keys()!r}>"


class RootContext(ScopeContext):
    def __init__(self, value: Any, init_msg: MsgSource = None, stack_start=None,
                 org_args: Optional[Iterable[Any]] = None, config=None):
        self._value = value
        self._init_msg = init_msg
        self._org_args = list(org_args) if org_args is not None else None
        self._config = config
        self._opts: Optional[ConfigInst] = None
        self._values: Dict[str, Any] = {}
        self._stack_fn = StackTracker().push(*_as_list(stack_start))
        self._ops = _BASE_OPS

    @property
    def value(self) -> Any:
        return self._value

    @property
    def opts(self) -> ConfigInst:
        if self._opts is None:
            config = self._config
            if isinstance(config, ConfigInst):
                self._opts = config.clone()
            else:
                self._opts = assert_config.clone(config)
        return self._opts

    @property
    def init_msg(self) -> MsgSource:
        return self._init_msg

    @property
    def org_args(self) -> Optional[List[Any]]:
        return self._org_args

    def get(self, name: str) -> Any:
        return self._values.get(name)

    def set(self, name: str, value: Any) -> "ScopeContext":
        self._values[name] = value
        return self

    def keys(self) -> List[str]:
        return list(self._values)


class ChildContext(ScopeContext):
    def __init__(self, parent: ScopeContext, value: Any,
                 overrides: Optional[Mapping[str, Callable[..., Any]]] = None):
        overrides = overrides or {}
        for name in overrides:
            if name not in OVERRIDABLE:
                raise TripwireError(f"Unknown context override: {name}, expected one of {', '.join(OVERRIDABLE)}")

        self._parent = parent
        self._value = value
        self._values: Dict[str, Any] = {}
        self._stack_fn = parent.stack_fn.child()
        self._ops = {
            name: _OverrideProxy(name, parent._ops[name], overrides.get(name))
            for name in OVERRIDABLE
        }

    @property
    def value(self) -> Any:
        return self._value

    @property
    def opts(self) -> ConfigInst:
        return self._parent.opts

    @property
    def init_msg(self) -> MsgSource:
        return self._parent.init_msg

    @property
    def org_args(self) -> Optional[List[Any]]:
        return self._parent.org_args

    @property
    def parent(self) -> ScopeContext:
        return self._parent

    def get(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        value = self._parent.get(name)
        # Snapshot containers so local changes never reach the parent
        if isinstance(value, list):
            value = list(value)
            self._values[name] = value
        elif isinstance(value, dict):
            value = dict(value)
            self._values[name] = value
        return value

    def set(self, name: str, value: Any) -> "ScopeContext":
        self._values[name] = value
        return self

    def keys(self) -> List[str]:
        keys = self._parent.keys()
        for key in self._values:
            if key not in keys:
                keys.append(key)
        return keys


def create_context(value: Any, init_msg: MsgSource = None, stack_start=None,
                   org_args: Optional[Iterable[Any]] = None, config=None) -> ScopeContext:
    """Creates a root context for `value`."""
    return RootContext(value, init_msg, stack_start, org_args, config)


_global_context: Optional[ScopeContext] = None


def _set_global_context(ctx: Optional[ScopeContext]) -> Optional[ScopeContext]:
    global _global_context
    previous = _global_context
    _global_context = ctx
    return previous


def get_scope_context(obj: Any = None) -> ScopeContext:
    """
    Returns the context behind an assertion object. With no argument the
    context installed by `use_scope` is returned.
    """
    # Imported here, the scope module builds on this one
    from tripwire.tripwire_scope import AssertInst, AssertScope

    if obj is None:
        if _global_context is None:
            raise TripwireError("No scope context is installed, use use_scope() or pass a value")
        return _global_context
    if isinstance(obj, ScopeContext):
        return obj
    if isinstance(obj, AssertInst):
        return obj.scope.context
    if isinstance(obj, AssertScope):
        return obj.context
    return create_context(obj)
