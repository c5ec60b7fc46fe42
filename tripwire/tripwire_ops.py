"""
Modifier operations: the property operations that reshape a chain (`not`,
`deep`, `own`, `to`, `is`, ...) and the core operation table every full
chain link starts from.
"""
import collections.abc
from typing import Any, Dict

from tripwire.tripwire_datatypes import MsgSource, ValueKind, classify
from tripwire.tripwire_funcs import (
    ChangeResult, deep_equal,
    above_func, all_keys_func, any_keys_func, below_func, changes_by_func, changes_but_not_by_func,
    changes_func, close_to_func, decreases_by_func, decreases_but_not_by_func, decreases_func,
    deep_equals_func, deep_nested_include_func, deep_strict_equals_func, ends_with_members_func, equals_func,
    exists_func, has_deep_nested_property_func,
    has_deep_own_property_func, has_deep_property_func, has_nested_property_func, has_own_property_func,
    has_property_func, include_members_func, include_ordered_members_func, increases_by_func,
    increases_but_not_by_func, increases_func, instance_of_func, is_array_func, is_boolean_func,
    is_empty_func, is_error_func, is_false_func, is_finite_func, is_function_func, is_iterable_func,
    is_nan_func, is_none_func, is_number_func, is_object_func, is_plain_object_func, is_string_func,
    is_true_func, least_func, length_func, match_func, most_func, nested_include_func, one_of_func,
    operator_func, same_members_func, same_ordered_members_func, starts_with_members_func, strict_equals_func,
    subsequence_func, throws_func, truthy_func, type_of_func, within_func,
)

DEEP = "deep"
OWN = "own"
ALL = "all"
ANY = "any"
INCLUDE = "include"
STRICT = "strict"


def _prop(fn) -> Dict[str, Any]:
    return {"prop_fn": fn}


def _func(fn) -> Dict[str, Any]:
    return {"scope_fn": fn}


def noop_op(scope, eval_msg: MsgSource = None):
    return scope.that


def not_op(scope, eval_msg: MsgSource = None):
    """Negates every evaluation made through the rest of the chain."""
    context = scope.context
    return scope.update_ctx(context.value, {
        "get_eval_message": lambda ctx, msg=None, skip_overrides=False: "not " + ctx.get_eval_message(msg),
        "eval": lambda ctx, expr, msg=None, caused_by=None: ctx.eval(not expr, msg, caused_by),
    }).that


# =================================================================
# include / contain
# =================================================================

def _check_collection(context):
    value = context.value
    if value is None or classify(value) is ValueKind.SCALAR:
        context.fatal("argument {value} ({typeof(value)}) is not a supported collection type for the operation.")


def _include_check(deep: bool, own: bool):
    def _matches(a, b, context):
        if deep:
            return deep_equal(a, b, context=context)
        return a is b or a == b

    def _includes(scope, match: Any, eval_msg: MsgSource = None):
        context = scope.context
        value = context.value
        _check_collection(context)
        context.set("match", match)
        kind = classify(value)
        label = ("deep " if deep else "") + "include" + (" own" if own else "")

        if kind is ValueKind.STRING:
            if not isinstance(match, str):
                context.fatal("expected {match} to be a string when searching in {value}")
            found = match in value
        elif kind in (ValueKind.ARRAY_LIKE, ValueKind.SET_LIKE):
            found = any(_matches(item, match, context) for item in value)
        elif kind in (ValueKind.MAP_LIKE, ValueKind.PLAIN_OBJECT) and not isinstance(match, collections.abc.Mapping):
            items = value if isinstance(value, collections.abc.Mapping) else getattr(value, "__dict__", {})
            context.set("keys", list(items))
            found = isinstance(match, collections.abc.Hashable) and match in items
            eval_msg = eval_msg or "expected {value} to have a {match} key"
        elif isinstance(match, collections.abc.Mapping):
            items = value if isinstance(value, collections.abc.Mapping) else getattr(value, "__dict__", {})
            found = all(key in items and _matches(items[key], match[key], context) for key in match)
            eval_msg = eval_msg or ("expected {value} to have " + ("own " if own else "")
                                    + "properties " + ("deeply " if deep else "") + "matching {match}")
        else:
            keys = [name for name in getattr(value, "__dict__", {})]
            context.set("keys", keys)
            found = isinstance(match, str) and (match in keys if own else hasattr(value, match))
            eval_msg = eval_msg or "expected {value} to have " + ("own " if own else "") + "{match} property"

        context.eval(found, eval_msg or ("expected {value} to " + label + " {match}"))
        return scope.that

    return _includes


def include_op(scope, eval_msg: MsgSource = None):
    context = scope.context
    context.set(INCLUDE, True)
    props = {
        "any": _prop(any_op),
        "all": _prop(all_op),
        "members": _func(include_members_func),
        "ordered": _prop(ordered_op),
        "ordered_members": _func(include_ordered_members_func),
        "same_members": _func(same_members_func),
        "same_ordered_members": _func(same_ordered_members_func),
        "starts_with_members": _func(starts_with_members_func),
        "ends_with_members": _func(ends_with_members_func),
        "subsequence": _func(subsequence_func),
    }
    return scope.create_operation(props, _include_check(bool(context.get(DEEP)), bool(context.get(OWN))))


# =================================================================
# Flags
# =================================================================

def deep_op(scope, eval_msg: MsgSource = None):
    scope.context.set(DEEP, True)
    props = {
        "not": _prop(not_op),
        "strictly": _prop(deep_strictly_op),
        "equal": _func(deep_equals_func),
        "equals": _func(deep_equals_func),
        "eq": _func(deep_equals_func),
        "include": _prop(include_op),
        "includes": _prop(include_op),
        "contain": _prop(include_op),
        "contains": _prop(include_op),
        "property": _func(has_deep_property_func),
        "own": _prop(own_deep_op),
        "members": _func(same_members_func),
        "same": _prop(same_op),
        "ordered": _prop(ordered_op),
        "nested": _prop(nested_op),
    }
    return scope.create_operation(props)


def own_op(scope, eval_msg: MsgSource = None):
    scope.context.set(OWN, True)
    deep = bool(scope.context.get(DEEP))
    props = {
        "not": _prop(not_op),
        "include": _prop(include_op),
        "includes": _prop(include_op),
        "contain": _prop(include_op),
        "contains": _prop(include_op),
        "property": _func(has_deep_own_property_func if deep else has_own_property_func),
    }
    return scope.create_operation(props)


def own_deep_op(scope, eval_msg: MsgSource = None):
    return own_op(scope, eval_msg)


def strictly_op(scope, eval_msg: MsgSource = None):
    scope.context.set(STRICT, True)
    props = {
        "not": _prop(not_op),
        "equal": _func(strict_equals_func),
        "equals": _func(strict_equals_func),
        "eq": _func(strict_equals_func),
        "deep": _prop(deep_strictly_op),
    }
    return scope.create_operation(props)


def deep_strictly_op(scope, eval_msg: MsgSource = None):
    scope.context.set(DEEP, True)
    scope.context.set(STRICT, True)
    props = {
        "not": _prop(not_op),
        "equal": _func(deep_strict_equals_func),
        "equals": _func(deep_strict_equals_func),
        "eq": _func(deep_strict_equals_func),
    }
    return scope.create_operation(props)


def any_op(scope, eval_msg: MsgSource = None):
    scope.context.set(ANY, True)
    scope.context.set(ALL, False)
    return scope.create_operation({"keys": _func(any_keys_func)})


def all_op(scope, eval_msg: MsgSource = None):
    scope.context.set(ANY, False)
    scope.context.set(ALL, True)
    return scope.create_operation({"keys": _func(all_keys_func)})


# =================================================================
# Members / nested
# =================================================================

def ordered_op(scope, eval_msg: MsgSource = None):
    """`ordered.members` compares in order; after `include` the members may sit anywhere as one run."""
    fn = include_ordered_members_func if scope.context.get(INCLUDE) else same_ordered_members_func
    return scope.create_operation({"not": _prop(not_op), "members": _func(fn)})


def same_op(scope, eval_msg: MsgSource = None):
    props = {
        "not": _prop(not_op),
        "deep": _prop(deep_op),
        "members": _func(same_members_func),
        "ordered": _prop(ordered_op),
    }
    return scope.create_operation(props)


def nested_op(scope, eval_msg: MsgSource = None):
    deep = bool(scope.context.get(DEEP))
    include_fn = _func(deep_nested_include_func if deep else nested_include_func)
    props = {
        "not": _prop(not_op),
        "property": _func(has_deep_nested_property_func if deep else has_nested_property_func),
        "include": include_fn,
        "includes": include_fn,
        "contain": include_fn,
        "contains": include_fn,
    }
    return scope.create_operation(props)


# =================================================================
# Language chains
# =================================================================

def _type_checks() -> Dict[str, Dict[str, Any]]:
    return {
        "ok": _func(truthy_func),
        "truthy": _func(truthy_func),
        "true": _func(is_true_func),
        "false": _func(is_false_func),
        "none": _func(is_none_func),
        "string": _func(is_string_func),
        "number": _func(is_number_func),
        "boolean": _func(is_boolean_func),
        "array": _func(is_array_func),
        "object": _func(is_object_func),
        "plain_object": _func(is_plain_object_func),
        "function": _func(is_function_func),
        "error": _func(is_error_func),
        "iterable": _func(is_iterable_func),
        "nan": _func(is_nan_func),
        "finite": _func(is_finite_func),
        "empty": _func(is_empty_func),
    }


def is_op(scope, eval_msg: MsgSource = None):
    props = _type_checks()
    props.update({
        "a": _prop(noop_op),
        "an": _prop(noop_op),
        "strictly": _prop(strictly_op),
        "not": _prop(not_op),
    })
    return scope.create_operation(props, scope.new_inst())


def has_op(scope, eval_msg: MsgSource = None):
    props = {
        "all": _prop(all_op),
        "any": _prop(any_op),
        "property": _func(has_property_func),
        "own": _prop(own_op),
        "not": _prop(not_op),
        "members": _func(same_members_func),
        "same": _prop(same_op),
        "ordered": _prop(ordered_op),
        "nested": _prop(nested_op),
    }
    return scope.create_operation(props, scope.new_inst())


def to_op(scope, eval_msg: MsgSource = None):
    props = {
        "not": _prop(not_op),
        "have": _prop(has_op),
        "be": _prop(is_op),
        "deep": _prop(deep_op),
        "include": _prop(include_op),
        "includes": _prop(include_op),
        "contain": _prop(include_op),
        "contains": _prop(include_op),
        "strictly": _prop(strictly_op),
        "match": _func(match_func),
        "nested": _prop(nested_op),
        "throw": _func(throws_func),
    }
    return scope.create_operation(props, scope.new_inst())


# =================================================================
# Change results
# =================================================================

def _by_op_fn(scope, delta: Any, eval_msg: MsgSource = None):
    context = scope.context
    actual_delta = context.value.delta
    context.set("expected_delta", delta)
    context.set("delta", actual_delta)

    if not isinstance(delta, (int, float)) or isinstance(delta, bool):
        context.fatal("expected delta ({expected_delta}) to be a number")
    if not isinstance(actual_delta, (int, float)) or isinstance(actual_delta, bool):
        context.fatal("expected actual delta ({delta}) to be a number")

    context.eval(
        actual_delta == delta,
        eval_msg or "expected {value} to change by {expected_delta}, but it changed by {delta}")
    return scope.that


def change_result_op(scope, result: ChangeResult):
    """A link over a ChangeResult offering `.by(delta)` and `.value`."""
    new_inst = scope.new_inst(result)

    def _value_op(scope, eval_msg: MsgSource = None):
        scope.that = scope.new_inst(result.value)
        return scope.that

    props = {
        "by": _func(_by_op_fn),
        "value": _prop(_value_op),
    }
    scope.that = scope.create_operation(props, new_inst)
    return scope.that


# =================================================================
# Core table
# =================================================================

CORE_FUNCTIONS: Dict[str, Dict[str, Any]] = {
    "not": _prop(not_op),
    "deep": _prop(deep_op),
    "own": _prop(own_op),
    "all": _prop(all_op),
    "any": _prop(any_op),
    "include": _prop(include_op),
    "includes": _prop(include_op),
    "contain": _prop(include_op),
    "contains": _prop(include_op),
    "strictly": _prop(strictly_op),
    "is": _prop(is_op),
    "same": _prop(same_op),
    "ordered": _prop(ordered_op),
    "nested": _prop(nested_op),
    "members": _func(same_members_func),
    "be": _prop(is_op),
    "to": _prop(to_op),
    "has": _prop(has_op),
    "have": _prop(has_op),
    "that": _prop(noop_op),
    "which": _prop(noop_op),
    "and": _prop(noop_op),
    "does": _prop(noop_op),

    "ok": _func(truthy_func),
    "truthy": _func(truthy_func),
    "true": _func(is_true_func),
    "false": _func(is_false_func),
    "none": _func(is_none_func),
    "exist": _func(exists_func),
    "exists": _func(exists_func),
    "empty": _func(is_empty_func),
    "equal": _func(equals_func),
    "equals": _func(equals_func),
    "eq": _func(equals_func),
    "operator": _func(operator_func),
    "above": _func(above_func),
    "gt": _func(above_func),
    "greater_than": _func(above_func),
    "least": _func(least_func),
    "gte": _func(least_func),
    "below": _func(below_func),
    "lt": _func(below_func),
    "less_than": _func(below_func),
    "most": _func(most_func),
    "lte": _func(most_func),
    "within": _func(within_func),
    "close_to": _func(close_to_func),
    "approximately": _func(close_to_func),
    "length_of": _func(length_func),
    "length": _func(length_func),
    "one_of": _func(one_of_func),
    "instance_of": _func(instance_of_func),
    "type_of": _func(type_of_func),
    "keys": _func(all_keys_func),

    "throws": _func(throws_func),
    "to_throw": _func(throws_func),
    "match": _func(match_func),
    "property": _func(has_property_func),
    "has_property": _func(has_property_func),
    "has_own_property": _func(has_own_property_func),

    "change": _func(changes_func),
    "changes": _func(changes_func),
    "change_by": _func(changes_by_func),
    "changes_by": _func(changes_by_func),
    "changes_but_not_by": _func(changes_but_not_by_func),
    "increase": _func(increases_func),
    "increases": _func(increases_func),
    "increase_by": _func(increases_by_func),
    "increases_by": _func(increases_by_func),
    "increases_but_not_by": _func(increases_but_not_by_func),
    "decrease": _func(decreases_func),
    "decreases": _func(decreases_func),
    "decrease_by": _func(decreases_by_func),
    "decreases_by": _func(decreases_by_func),
    "decreases_but_not_by": _func(decreases_but_not_by_func),
}
