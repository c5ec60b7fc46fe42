"""
The operation builder: assertion scopes and the fluent chain links built on them.

An AssertScope holds the current context and the current chain link. Each
AssertInst link resolves attribute access through its own operation table,
then the user table, then the core table. Property operations (`prop_fn`)
run on access and return the next link; function operations (`scope_fn`)
are returned as bound callables.
"""
import keyword
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from tripwire.tripwire_context import ScopeContext, get_scope_context
from tripwire.tripwire_datatypes import MsgSource, get_fn_name
from tripwire.tripwire_errors import AssertionFailure, TripwireError

_MISSING = object()

_RESERVED = frozenset(("scope", "context", "fail", "fatal", "has_op", "op_names"))


class OpDef:
    """A single operation definition: exactly one of `prop_fn` or `scope_fn`."""
    __slots__ = ("name", "prop_fn", "scope_fn", "eval_msg", "user")

    def __init__(self, name: str, prop_fn: Optional[Callable[..., Any]] = None,
                 scope_fn: Optional[Callable[..., Any]] = None, eval_msg: MsgSource = None,
                 user: bool = False):
        self.name = name
        self.prop_fn = prop_fn
        self.scope_fn = scope_fn
        self.eval_msg = eval_msg
        self.user = user

    def bind(self, inst: "AssertInst") -> Any:
        scope = inst.scope
        if self.prop_fn is not None:
            scope.context.set_op(self.name)
            return _handle_result(scope, self.prop_fn(scope, self.eval_msg))

        scope_fn = self.scope_fn
        op_name = self.name

        def _op_call(*args):
            scope.context.set_op(op_name + "()")
            scope.context.stack_fn.push(_op_call)
            return _handle_result(scope, scope.exec(scope_fn, args, op_name))

        _op_call.__name__ = op_name
        _op_call.__qualname__ = op_name
        return _op_call

    def __repr__(self) -> str:
        kind = "prop_fn" if self.prop_fn is not None else "scope_fn"
        return f"<OpDef {self.name} {kind}{' user' if self.user else ''}>"


def _handle_result(scope: "AssertScope", result: Any) -> Any:
    if result is None:
        scope.that = scope.new_inst()
        return scope.that
    if isinstance(result, AssertInst):
        scope.that = result
    return result


def is_callable_step(value: Any) -> bool:
    """Like callable(), but only counts chain links that were given a call function."""
    if isinstance(value, AssertInst):
        return value._call_fn is not None
    return callable(value)


def _op_aliases(name: str):
    """Yields the lookup names for an operation, adding `not_` for keywords like `not`."""
    yield name
    if keyword.iskeyword(name) or name in ("none", "true", "false", "type"):
        yield name + "_"


def _as_op_def(name: str, definition: Any, user: bool) -> OpDef:
    if isinstance(definition, OpDef):
        definition = {"prop_fn": definition.prop_fn, "scope_fn": definition.scope_fn,
                      "eval_msg": definition.eval_msg}
    elif callable(definition):
        definition = {"scope_fn": definition}
    if not isinstance(definition, Mapping):
        raise TripwireError(f"Invalid definition for {name}: {definition!r}")

    prop_fn = definition.get("prop_fn")
    scope_fn = definition.get("scope_fn")
    if prop_fn is not None and scope_fn is not None:
        raise TripwireError(f"Invalid definition for {name}: only one of prop_fn or scope_fn may be set")
    if prop_fn is None and scope_fn is None:
        raise TripwireError(f"Invalid definition for {name}: one of prop_fn or scope_fn is required")
    if not callable(prop_fn if prop_fn is not None else scope_fn):
        raise TripwireError(f"Invalid definition for {name}: the operation is not callable")
    return OpDef(name, prop_fn, scope_fn, definition.get("eval_msg"), user)


def add_op_defs(target: Dict[str, OpDef], funcs: Mapping[str, Any], user: bool = True,
                protected: Optional[Mapping[str, OpDef]] = None):
    """Validates `funcs` and installs them (and keyword aliases) into `target`."""
    for name, definition in funcs.items():
        if not isinstance(name, str) or not name or name.startswith("_") or name in _RESERVED:
            raise TripwireError(f"Invalid operation name: {name!r}")
        op_def = _as_op_def(name, definition, user)
        for alias in _op_aliases(name):
            if protected is not None and alias in protected:
                raise TripwireError(f"Cannot replace the core operation: {alias}")
            target[alias] = op_def


# Shared tables: core operations are loaded once, user operations can be cleared
_core_ops: Dict[str, OpDef] = {}
_user_ops: Dict[str, OpDef] = {}


def _get_core_ops() -> Dict[str, OpDef]:
    if not _core_ops:
        # Imported here, the operations module builds on this one
        from tripwire.tripwire_ops import CORE_FUNCTIONS
        add_op_defs(_core_ops, CORE_FUNCTIONS, user=False)
    return _core_ops


def add_assert_inst_funcs(funcs: Mapping[str, Any]):
    """Adds user operations to every chain link created from now on."""
    add_op_defs(_user_ops, funcs, user=True, protected=_get_core_ops())


def add_assert_inst_func(name: str, scope_fn: Callable[..., Any]):
    add_assert_inst_funcs({name: {"scope_fn": scope_fn}})


def add_assert_inst_property(name: str, prop_fn: Callable[..., Any], eval_msg: MsgSource = None):
    add_assert_inst_funcs({name: {"prop_fn": prop_fn, "eval_msg": eval_msg}})


def clear_user_inst_funcs():
    """Removes every operation added through add_assert_inst_funcs."""
    _user_ops.clear()


class AssertInst:
    """
    A link in a fluent assertion chain. Links created by `create_operation`
    carry their own operations and may be callable themselves.
    """
    __slots__ = ("_scope", "_ops", "_use_base", "_call_fn")

    def __init__(self, scope: "AssertScope", use_base: bool = True,
                 call_fn: Optional[Callable[..., Any]] = None):
        self._scope = scope
        self._ops: Dict[str, OpDef] = {}
        self._use_base = use_base
        self._call_fn = call_fn

    @property
    def scope(self) -> "AssertScope":
        return self._scope

    @property
    def context(self) -> ScopeContext:
        return self._scope.context

    def _find_op(self, name: str) -> Optional[OpDef]:
        op_def = self._ops.get(name)
        if op_def is None and self._use_base:
            op_def = _user_ops.get(name) or _get_core_ops().get(name)
        return op_def

    def has_op(self, name: str) -> bool:
        return self._find_op(name) is not None

    def op_names(self):
        names = set(self._ops)
        if self._use_base:
            names.update(_user_ops)
            names.update(_get_core_ops())
        return sorted(names)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        op_def = self._find_op(name)
        if op_def is None:
            raise AttributeError(
                f"'{name}' is not a supported operation, available: [{'; '.join(self.op_names())}]")
        return op_def.bind(self)

    def __dir__(self) -> Iterable[str]:
        return self.op_names()

    def __call__(self, *args):
        if self._call_fn is None:
            raise TypeError(f"{self!r} is not callable")
        fn = self._call_fn
        scope = self._scope

        def _link_call(*call_args):
            return scope.exec(fn, call_args)

        scope.context.stack_fn.push(AssertInst.__call__, _link_call)
        return _handle_result(scope, _link_call(*args))

    def fail(self, *args):
        return self._scope.fail(*args)

    def fatal(self, msg: MsgSource = None, details: Optional[Dict[str, Any]] = None):
        return self._scope.fatal(msg, details)

    def __repr__(self) -> str:
        return f"<AssertInst path={self._scope.context.get('op_path')!r}>"


class AssertScope:
    """Holds the current context and chain link of one assertion."""

    def __init__(self, context: ScopeContext):
        self._context = context
        self.that: Any = None
        self.that = AssertInst(self)

    @property
    def context(self) -> ScopeContext:
        return self._context

    def new_scope(self, value: Any = _MISSING) -> "AssertScope":
        """A separate scope over a child context, leaving this chain untouched."""
        if value is _MISSING:
            value = self._context.value
        return AssertScope(self._context.new(value))

    def update_ctx(self, value: Any, overrides: Optional[Mapping[str, Callable[..., Any]]] = None) -> "AssertScope":
        """Moves this scope onto a child context when the value changes or overrides are given."""
        if overrides or value is not self._context.value:
            self._context = self._context.new(value, overrides)
        return self

    def new_inst(self, value: Any = _MISSING, overrides: Optional[Mapping[str, Callable[..., Any]]] = None) -> AssertInst:
        if value is not _MISSING:
            self.update_ctx(value, overrides)
        elif overrides:
            self.update_ctx(self._context.value, overrides)
        return AssertInst(self)

    def new_empty_inst(self, value: Any = _MISSING) -> AssertInst:
        if value is not _MISSING:
            self.update_ctx(value)
        return AssertInst(self, use_base=False)

    def create_operation(self, funcs: Mapping[str, Any], obj: Any = None) -> AssertInst:
        """
        Creates a chain link carrying `funcs`. `obj` may be an existing link of
        this scope to extend, or a scope function that makes the link callable.
        """
        if isinstance(obj, AssertInst):
            if obj.scope is not self:
                raise TripwireError("The operation target belongs to a different scope")
            inst = obj
        elif obj is None or callable(obj):
            inst = AssertInst(self, use_base=False, call_fn=obj)
        else:
            raise TripwireError(f"Invalid operation target: {obj!r}")
        add_op_defs(inst._ops, funcs)
        return inst

    def exec(self, fn: Callable[..., Any], args: Iterable[Any] = (), func_name: Optional[str] = None) -> Any:
        """Runs a scope function as `fn(scope, *args)`."""
        context = self._context
        context.stack_fn.push(AssertScope.exec)
        if context.opts.is_verbose:
            context.set_op(f"[[{func_name or get_fn_name(fn)}]]")
        return fn(self, *args)

    def fail(self, *args):
        """`fail(msg=None, details=None)` or `fail(actual, expected, msg, operator=None)`."""
        _fail_fn(self, args)

    def fatal(self, msg: MsgSource = None, details: Optional[Dict[str, Any]] = None):
        _fatal_fn(self, msg, details)

    def __repr__(self) -> str:
        return f"<AssertScope context={self._context!r}>"


def _fail_fn(target: Any, args) -> None:
    context = get_scope_context(target)
    details = None
    if len(args) > 2:
        msg = args[2]
        for pos, name in ((0, "actual"), (1, "expected"), (3, "operator")):
            if pos < len(args) and args[pos] is not None:
                context.set(name, args[pos])
    else:
        msg = args[0] if len(args) > 0 else None
        details = args[1] if len(args) > 1 else None

    context.stack_fn.push(_fail_fn, AssertScope.fail, AssertInst.fail)
    stack = None if context.opts.full_stack else context.stack_fn
    # An explicit fail is never negated by the chain
    raise AssertionFailure(
        context.get_message(msg or context.opts.def_assert_msg or "assertion failure", True),
        details or context.get_details(),
        stack,
        opts=context.opts)


def _fatal_fn(target: Any, msg: MsgSource = None, details: Optional[Dict[str, Any]] = None) -> None:
    context = get_scope_context(target)
    context.stack_fn.push(_fatal_fn, AssertScope.fatal, AssertInst.fatal)
    context.fatal(msg or context.opts.def_fatal_msg or "fatal assertion failure", details, context.stack_fn)


def create_assert_scope(context: ScopeContext) -> AssertScope:
    return AssertScope(context)
