"""
The user-facing assertion surfaces: the fluent `expect(value)` chain, the
direct `assert_` object with named predicates, and `use_scope`.
"""
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from tripwire.tripwire_adapters import create_expr_adapter, create_not_adapter
from tripwire.tripwire_config import assert_config
from tripwire.tripwire_context import ScopeContext, _set_global_context, create_context
from tripwire.tripwire_datatypes import MsgSource, get_fn_name
from tripwire.tripwire_errors import TripwireError
from tripwire.tripwire_funcs import (
    above_func, all_keys_func, any_keys_func, below_func, changes_by_func, changes_func,
    close_to_func, decreases_by_func, decreases_func, deep_equals_func, deep_nested_include_func,
    deep_strict_equals_func, ends_with_members_func, equals_func, has_deep_nested_property_func,
    has_deep_property_func, has_nested_property_func, has_own_property_func, has_property_func,
    include_deep_members_func, include_members_func, include_ordered_members_func, increases_by_func,
    increases_func, instance_of_func, is_boolean_func, is_empty_func, is_error_func, is_false_func,
    is_function_func, is_iterable_func, is_none_func, is_number_func, is_object_func,
    is_plain_object_func, is_true_func, least_func, length_func, match_func, most_func,
    nested_include_func, one_of_func, same_deep_members_func, same_deep_ordered_members_func,
    same_members_func, same_ordered_members_func, starts_with_members_func, strict_equals_func,
    subsequence_func, throws_func, type_of_func, within_func,
)
from tripwire.tripwire_scope import AssertInst, AssertScope

AssertClassDef = Union[Callable[..., Any], str, Sequence[str], Mapping[str, Any]]

_alias_stack_start: Optional[Callable[..., Any]] = None


def expect(value: Any, init_msg: MsgSource = None, config=None) -> AssertInst:
    """Starts a fluent assertion chain over `value`."""
    context = create_context(value, init_msg, [expect], [value], config)
    context.stack_fn.push(AssertInst.__getattr__, AssertInst.__call__)
    return AssertScope(context).that


def use_scope(context: ScopeContext, callback: Callable[[], Any]) -> Any:
    """Runs `callback` with `context` installed as the current scope context."""
    previous = _set_global_context(context)
    try:
        return callback()
    finally:
        _set_global_context(previous)


class AssertClass:
    """
    The direct assertion object. Calling it checks a boolean; its attributes
    are named predicates taking the subject first, e.g. `assert_.equal(a, b)`.
    """

    def __init__(self):
        self._last_context: Optional[ScopeContext] = None

    def __call__(self, expr: Any, init_msg: MsgSource = None):
        context = create_context(expr, init_msg, [AssertClass.__call__], [expr], assert_config)
        self._last_context = context
        # Without an init message the configured default is reported
        context.eval(expr, None if init_msg else context.opts.def_assert_msg or "assertion failure")

    @property
    def last_context(self) -> Optional[ScopeContext]:
        """The context of the most recent direct assertion."""
        return self._last_context

    def __repr__(self) -> str:
        return f"<AssertClass funcs={len([k for k in vars(self) if not k.startswith('_')])}>"


def _extract_init_msg(args: list, n_args: int, m_idx: int) -> Any:
    msg = None
    if m_idx >= 0:
        if len(args) > m_idx:
            msg = args.pop(m_idx)
    else:
        idx = len(args) + m_idx
        if 0 <= idx < len(args) and 0 <= n_args < len(args):
            msg = args.pop(idx)
    return msg


def _create_alias_func(target: Any, alias: str):
    def _alias_proxy_func(*args):
        global _alias_stack_start
        current = _alias_stack_start
        try:
            _alias_stack_start = current or _alias_proxy_func
            return getattr(target, alias)(*args)
        finally:
            _alias_stack_start = current

    _alias_proxy_func.__name__ = alias
    return _alias_proxy_func


def _create_proxy_func(target: Any, assert_name: str, definition: Mapping[str, Any]):
    scope_fn = definition.get("scope_fn")
    n_args = definition.get("n_args")
    n_args = 1 if n_args is None else n_args
    m_idx = definition.get("m_idx")
    m_idx = -1 if m_idx is None else m_idx

    if not callable(scope_fn):
        raise TripwireError(f"Invalid definition for {assert_name}: {definition!r}")

    def _assert_func(*args):
        the_args = list(args)
        org_args = list(args)
        init_msg = _extract_init_msg(the_args, n_args, m_idx)

        actual = None
        scope_args = the_args
        if the_args and n_args > 0:
            actual = the_args.pop(0)

        stack_start = _alias_stack_start or _assert_func
        context = create_context(actual, init_msg, stack_start, org_args, assert_config)
        context.stack_fn.push(stack_start, AssertInst.__getattr__, AssertInst.__call__)
        scope = AssertScope(context)
        context.set_op(assert_name + "()")
        target._last_context = context
        return scope.exec(scope_fn, scope_args, get_fn_name(scope_fn))

    _assert_func.__name__ = assert_name
    _assert_func.__qualname__ = assert_name
    return _assert_func


def _as_definition(name: str, definition: AssertClassDef) -> Dict[str, Any]:
    if isinstance(definition, (list, tuple)):
        if not definition or not all(isinstance(step, str) for step in definition):
            raise TripwireError(f"Invalid definition for {name}: {definition!r}")
        return {"scope_fn": create_expr_adapter(list(definition))}
    if isinstance(definition, str):
        return {"scope_fn": create_expr_adapter(definition)}
    if callable(definition):
        return {"scope_fn": definition}
    if not definition or not isinstance(definition, Mapping):
        raise TripwireError(f"Invalid definition for {name}: {definition!r}")
    return dict(definition)


def add_assert_funcs(target: Any, funcs: Mapping[str, AssertClassDef]):
    """
    Installs direct assertion functions on `target`. A definition is a scope
    function, an expression string (or list of steps), `{"alias": name}` or a
    mapping with `scope_fn` and optional `n_args` / `m_idx`.
    """
    for name, definition in funcs.items():
        if not isinstance(name, str) or not name or name.startswith("_"):
            raise TripwireError(f"Invalid assert function name: {name!r}")
        the_def = _as_definition(name, definition)
        if the_def.get("alias"):
            setattr(target, name, _create_alias_func(target, the_def["alias"]))
        else:
            setattr(target, name, _create_proxy_func(target, name, the_def))


def add_assert_func(target: Any, name: str, definition: AssertClassDef):
    add_assert_funcs(target, {name: definition})


def _not(fn):
    return create_expr_adapter("not", fn)


def create_assert() -> AssertClass:
    """Creates a direct assertion object carrying the standard predicates."""
    target = AssertClass()
    add_assert_funcs(target, {
        # No subject is passed to fail / fatal
        "fail": {"scope_fn": create_expr_adapter("fail"), "n_args": 0},
        "fatal": {"scope_fn": create_expr_adapter("fatal"), "n_args": 0},

        "ok": "ok",
        "is_ok": "ok",
        "is_not_ok": "not.ok",

        "equal": {"scope_fn": equals_func, "n_args": 2},
        "equals": {"alias": "equal"},
        "not_equal": {"scope_fn": _not(equals_func), "n_args": 2},
        "not_equals": {"alias": "not_equal"},
        "strict_equal": {"scope_fn": strict_equals_func, "n_args": 2},
        "strict_equals": {"alias": "strict_equal"},
        "not_strict_equal": {"scope_fn": _not(strict_equals_func), "n_args": 2},
        "deep_equal": {"scope_fn": deep_equals_func, "n_args": 2},
        "deep_equals": {"alias": "deep_equal"},
        "not_deep_equal": {"scope_fn": _not(deep_equals_func), "n_args": 2},
        "deep_strict_equal": {"scope_fn": deep_strict_equals_func, "n_args": 2},

        "is_true": is_true_func,
        "is_not_true": _not(is_true_func),
        "is_false": is_false_func,
        "is_not_false": _not(is_false_func),
        "is_none": is_none_func,
        "is_not_none": _not(is_none_func),
        "exists": "exist",
        "not_exists": "not.exist",
        "is_empty": is_empty_func,
        "is_not_empty": _not(is_empty_func),

        "is_string": "is.string",
        "is_not_string": "not.is.string",
        "is_number": is_number_func,
        "is_not_number": _not(is_number_func),
        "is_boolean": is_boolean_func,
        "is_not_boolean": _not(is_boolean_func),
        "is_array": "is.array",
        "is_not_array": "not.is.array",
        "is_object": is_object_func,
        "is_not_object": _not(is_object_func),
        "is_plain_object": is_plain_object_func,
        "is_not_plain_object": _not(is_plain_object_func),
        "is_function": is_function_func,
        "is_not_function": _not(is_function_func),
        "is_error": is_error_func,
        "is_iterable": is_iterable_func,
        "is_not_iterable": _not(is_iterable_func),
        "is_nan": "is.nan",
        "is_not_nan": "not.is.nan",
        "is_finite": "is.finite",
        "is_not_finite": "not.is.finite",

        "type_of": {"scope_fn": type_of_func, "n_args": 2},
        "not_type_of": {"scope_fn": _not(type_of_func), "n_args": 2},
        "is_instance_of": {"scope_fn": instance_of_func, "n_args": 2},
        "is_not_instance_of": {"scope_fn": _not(instance_of_func), "n_args": 2},
        "one_of": {"scope_fn": one_of_func, "n_args": 2},
        "not_one_of": {"scope_fn": _not(one_of_func), "n_args": 2},

        "include": {"scope_fn": create_expr_adapter("include"), "n_args": 2},
        "includes": {"alias": "include"},
        "not_include": {"scope_fn": create_expr_adapter("not.include"), "n_args": 2},
        "deep_include": {"scope_fn": create_expr_adapter("deep.include"), "n_args": 2},
        "not_deep_include": {"scope_fn": create_expr_adapter("not.deep.include"), "n_args": 2},

        "throws": {"scope_fn": throws_func, "n_args": 3},
        "does_not_throw": {"scope_fn": create_not_adapter(throws_func), "n_args": 3},
        "match": {"scope_fn": match_func, "n_args": 2},
        "not_match": {"scope_fn": _not(match_func), "n_args": 2},

        "has_property": {"scope_fn": has_property_func, "n_args": 3},
        "not_has_property": {"scope_fn": _not(has_property_func), "n_args": 3},
        "has_own_property": {"scope_fn": has_own_property_func, "n_args": 3},
        "not_has_own_property": {"scope_fn": _not(has_own_property_func), "n_args": 3},
        "has_deep_property": {"scope_fn": has_deep_property_func, "n_args": 3},
        "not_has_deep_property": {"scope_fn": _not(has_deep_property_func), "n_args": 3},
        "has_all_keys": {"scope_fn": all_keys_func, "n_args": 2},
        "has_any_keys": {"scope_fn": any_keys_func, "n_args": 2},
        "nested_property": {"scope_fn": has_nested_property_func, "n_args": 3},
        "not_nested_property": {"scope_fn": _not(has_nested_property_func), "n_args": 3},
        "deep_nested_property": {"scope_fn": has_deep_nested_property_func, "n_args": 3},
        "not_deep_nested_property": {"scope_fn": _not(has_deep_nested_property_func), "n_args": 3},
        "nested_include": {"scope_fn": nested_include_func, "n_args": 2},
        "not_nested_include": {"scope_fn": _not(nested_include_func), "n_args": 2},
        "deep_nested_include": {"scope_fn": deep_nested_include_func, "n_args": 2},
        "not_deep_nested_include": {"scope_fn": _not(deep_nested_include_func), "n_args": 2},

        "same_members": {"scope_fn": same_members_func, "n_args": 2},
        "not_same_members": {"scope_fn": _not(same_members_func), "n_args": 2},
        "same_deep_members": {"scope_fn": same_deep_members_func, "n_args": 2},
        "not_same_deep_members": {"scope_fn": _not(same_deep_members_func), "n_args": 2},
        "same_ordered_members": {"scope_fn": same_ordered_members_func, "n_args": 2},
        "not_same_ordered_members": {"scope_fn": _not(same_ordered_members_func), "n_args": 2},
        "same_deep_ordered_members": {"scope_fn": same_deep_ordered_members_func, "n_args": 2},
        "include_members": {"scope_fn": include_members_func, "n_args": 2},
        "not_include_members": {"scope_fn": _not(include_members_func), "n_args": 2},
        "include_deep_members": {"scope_fn": include_deep_members_func, "n_args": 2},
        "not_include_deep_members": {"scope_fn": _not(include_deep_members_func), "n_args": 2},
        "include_ordered_members": {"scope_fn": include_ordered_members_func, "n_args": 2},
        "not_include_ordered_members": {"scope_fn": _not(include_ordered_members_func), "n_args": 2},
        "starts_with_members": {"scope_fn": starts_with_members_func, "n_args": 2},
        "ends_with_members": {"scope_fn": ends_with_members_func, "n_args": 2},
        "is_subsequence": {"scope_fn": subsequence_func, "n_args": 2},
        "is_not_subsequence": {"scope_fn": _not(subsequence_func), "n_args": 2},

        "is_above": {"scope_fn": above_func, "n_args": 2},
        "is_not_above": {"scope_fn": _not(above_func), "n_args": 2},
        "is_at_least": {"scope_fn": least_func, "n_args": 2},
        "is_not_at_least": {"scope_fn": _not(least_func), "n_args": 2},
        "is_below": {"scope_fn": below_func, "n_args": 2},
        "is_not_below": {"scope_fn": _not(below_func), "n_args": 2},
        "is_at_most": {"scope_fn": most_func, "n_args": 2},
        "is_not_at_most": {"scope_fn": _not(most_func), "n_args": 2},
        "is_within": {"scope_fn": within_func, "n_args": 3},
        "is_not_within": {"scope_fn": _not(within_func), "n_args": 3},
        "close_to": {"scope_fn": close_to_func, "n_args": 3},
        "not_close_to": {"scope_fn": _not(close_to_func), "n_args": 3},
        "approximately": {"alias": "close_to"},

        "length_of": {"scope_fn": length_func, "n_args": 2},
        "not_length_of": {"scope_fn": _not(length_func), "n_args": 2},
        "size_of": {"alias": "length_of"},

        "changes": {"scope_fn": changes_func, "n_args": 3},
        "does_not_change": {"scope_fn": _not(changes_func), "n_args": 3},
        "changes_by": {"scope_fn": changes_by_func, "n_args": 4},
        "increases": {"scope_fn": increases_func, "n_args": 3},
        "increases_by": {"scope_fn": increases_by_func, "n_args": 4},
        "decreases": {"scope_fn": decreases_func, "n_args": 3},
        "decreases_by": {"scope_fn": decreases_by_func, "n_args": 4},
    })
    return target


assert_ = create_assert()
