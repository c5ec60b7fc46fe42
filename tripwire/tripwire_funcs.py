"""
The predicate catalogue. Every function here is a scope function: it is
called as `fn(scope, *args)`, evaluates against `scope.context.value` and
returns the chain link to continue with.
"""
import collections.abc
import math
import operator as _operator
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from tripwire.tripwire_adapters import do_await
from tripwire.tripwire_datatypes import (
    MsgSource, ValueKind, classify, is_date, is_number, is_primitive, is_regex,
)
from tripwire.tripwire_errors import AssertionFatal

_MISSING = object()


# =================================================================
# Helpers
# =================================================================

def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _get_attrs(value: Any) -> dict:
    attrs = {}
    for cls in type(value).__mro__[:-1]:
        slots = cls.__dict__.get("__slots__", ())
        for name in ((slots,) if isinstance(slots, str) else slots):
            if hasattr(value, name):
                attrs[name] = getattr(value, name)
    attrs.update(getattr(value, "__dict__", {}))
    return attrs


class _DepthExceeded(Exception):
    pass


def deep_equal(a: Any, b: Any, opts=None, strict: bool = False, context=None) -> bool:
    """
    Structural equality. Containers are compared item by item, objects by
    their attributes. Comparing past `max_compare_depth` is fatal: through
    `context.fatal` when a context is given, otherwise as AssertionFatal.
    """
    if opts is None and context is not None:
        opts = context.opts
    max_depth = opts.max_compare_depth if opts is not None else 100
    check_depth = opts.max_compare_check_depth if opts is not None else 50
    try:
        return _deep_equal(a, b, strict, max_depth, check_depth, 0, [])
    except _DepthExceeded:
        if context is not None:
            context.set("max_compare_depth", max_depth)
            context.fatal("expected {value} to be comparable within {max_compare_depth} levels")
        raise AssertionFatal(f"deep comparison exceeded the maximum depth of {max_depth}") from None


def _deep_equal(a, b, strict, max_depth, check_depth, depth, seen) -> bool:
    if a is b:
        return True
    if strict and type(a) is not type(b):
        return False
    if depth >= check_depth:
        for seen_a, seen_b in seen:
            if seen_a is a and seen_b is b:
                return True

    kind_a, kind_b = classify(a), classify(b)
    if kind_a is not kind_b or kind_a in (ValueKind.SCALAR, ValueKind.STRING):
        if _is_nan(a) and _is_nan(b):
            return True
        try:
            return bool(a == b)
        except Exception:
            return False
    if kind_a is ValueKind.FUNCTION:
        return False
    if depth >= max_depth:
        raise _DepthExceeded()

    seen.append((a, b))
    try:
        def _eq(x, y):
            return _deep_equal(x, y, strict, max_depth, check_depth, depth + 1, seen)

        if kind_a is ValueKind.ARRAY_LIKE:
            return len(a) == len(b) and all(_eq(x, y) for x, y in zip(a, b))
        if kind_a is ValueKind.SET_LIKE:
            return len(a) == len(b) and all(any(_eq(x, y) for y in b) for x in a)
        if kind_a in (ValueKind.PLAIN_OBJECT, ValueKind.MAP_LIKE):
            items_a = a if isinstance(a, collections.abc.Mapping) else vars(a)
            items_b = b if isinstance(b, collections.abc.Mapping) else vars(b)
            if set(items_a.keys()) != set(items_b.keys()):
                return False
            return all(_eq(items_a[key], items_b[key]) for key in items_a)

        if type(a) is not type(b):
            return False
        if isinstance(a, BaseException):
            return a.args == b.args or str(a) == str(b)
        if is_date(a) or is_regex(a) or type(a).__eq__ is not object.__eq__:
            try:
                return bool(a == b)
            except Exception:
                return False
        return _eq(_get_attrs(a), _get_attrs(b))
    finally:
        seen.pop()


def _check_number(context, value: Any, name: str, allow_dates: bool = True):
    if is_number(value) or (allow_dates and is_date(value)):
        return
    context.set(name, value)
    if allow_dates:
        context.fatal("expected {" + name + "} to be a number or a date, found {typeof(" + name + ")}")
    context.fatal("expected {" + name + "} to be a number, found {typeof(" + name + ")}")


def _as_key_list(keys) -> List[Any]:
    if len(keys) == 1:
        first = keys[0]
        if isinstance(first, collections.abc.Mapping):
            return list(first.keys())
        if isinstance(first, (list, tuple, set, frozenset)):
            return list(first)
    return list(keys)


def _obj_keys(context, value: Any) -> List[Any]:
    kind = classify(value)
    if kind in (ValueKind.PLAIN_OBJECT, ValueKind.MAP_LIKE):
        return list(value.keys()) if isinstance(value, collections.abc.Mapping) else list(vars(value))
    if kind in (ValueKind.SCALAR, ValueKind.STRING) or value is None:
        context.fatal("expected {value} to be an object or a mapping, found {typeof(value)}")
    return [name for name in _get_attrs(value) if not name.startswith("_")]


# =================================================================
# Truthiness, identity and types
# =================================================================

def truthy_func(scope, eval_msg: MsgSource = None):
    scope.context.eval(bool(scope.context.value), eval_msg or "expected {value} to be truthy")
    return scope.that


def is_true_func(scope, eval_msg: MsgSource = None):
    scope.context.eval(scope.context.value is True, eval_msg or "expected {value} to be True")
    return scope.that


def is_false_func(scope, eval_msg: MsgSource = None):
    scope.context.eval(scope.context.value is False, eval_msg or "expected {value} to be False")
    return scope.that


def is_none_func(scope, eval_msg: MsgSource = None):
    scope.context.eval(scope.context.value is None, eval_msg or "expected {value} to be None")
    return scope.that


def exists_func(scope, eval_msg: MsgSource = None):
    scope.context.eval(scope.context.value is not None, eval_msg or "expected {value} to exist")
    return scope.that


def _type_check_func(check: Callable[[Any], bool], description: str, name: str):
    def _type_func(scope, eval_msg: MsgSource = None):
        scope.context.eval(check(scope.context.value), eval_msg or ("expected {value} to be " + description))
        return scope.that

    _type_func.__name__ = name
    return _type_func


def _is_iterable(value: Any) -> bool:
    try:
        iter(value)
    except TypeError:
        return False
    return True


is_string_func = _type_check_func(lambda v: isinstance(v, str), "a string", "is_string_func")
is_number_func = _type_check_func(is_number, "a number", "is_number_func")
is_boolean_func = _type_check_func(lambda v: isinstance(v, bool), "a boolean", "is_boolean_func")
is_array_func = _type_check_func(lambda v: classify(v) is ValueKind.ARRAY_LIKE, "an array", "is_array_func")
is_object_func = _type_check_func(
    lambda v: not is_primitive(v) and classify(v) is not ValueKind.FUNCTION, "an object", "is_object_func")
is_plain_object_func = _type_check_func(
    lambda v: classify(v) is ValueKind.PLAIN_OBJECT, "a plain object", "is_plain_object_func")
is_function_func = _type_check_func(callable, "a function", "is_function_func")
is_error_func = _type_check_func(lambda v: isinstance(v, BaseException), "an error", "is_error_func")
is_iterable_func = _type_check_func(_is_iterable, "an iterable", "is_iterable_func")
is_nan_func = _type_check_func(_is_nan, "NaN", "is_nan_func")
is_finite_func = _type_check_func(
    lambda v: is_number(v) and math.isfinite(v), "a finite number", "is_finite_func")


def type_of_func(scope, type_name: str, eval_msg: MsgSource = None):
    context = scope.context
    context.set("type_name", type(context.value).__name__)
    context.set("expected", type_name)
    context.eval(
        type(context.value).__name__ == type_name,
        eval_msg or "expected {value} to be of type {expected}, found {type_name}")
    return scope.that


def instance_of_func(scope, cls: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("expected", cls)
    if not isinstance(cls, type) and not (isinstance(cls, tuple) and all(isinstance(c, type) for c in cls)):
        context.fatal("expected {expected} to be a class or a tuple of classes")
    context.eval(isinstance(context.value, cls), eval_msg or "expected {value} to be an instance of {expected}")
    return scope.that


def is_empty_func(scope, eval_msg: MsgSource = None):
    context = scope.context
    value = context.value
    if value is None or classify(value) is ValueKind.SCALAR or not isinstance(value, collections.abc.Sized):
        context.fatal("expected {value} to be a string, collection or mapping, found {typeof(value)}")
    context.eval(len(value) == 0, eval_msg or "expected {value} to be empty")
    return scope.that


# =================================================================
# Equality and comparison
# =================================================================

def equals_func(scope, expected: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("expected", expected)
    value = context.value
    context.eval(value == expected or (_is_nan(value) and _is_nan(expected)),
                 eval_msg or "expected {value} to equal {expected}")
    return scope.that


def strict_equals_func(scope, expected: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("expected", expected)
    value = context.value
    same = value is expected or (type(value) is type(expected) and value == expected)
    context.eval(same, eval_msg or "expected {value} to strictly equal {expected}")
    return scope.that


def deep_equals_func(scope, expected: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("expected", expected)
    context.eval(deep_equal(context.value, expected, context=context),
                 eval_msg or "expected {value} to deep equal {expected}")
    return scope.that


def deep_strict_equals_func(scope, expected: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("expected", expected)
    context.eval(deep_equal(context.value, expected, strict=True, context=context),
                 eval_msg or "expected {value} to deep strictly equal {expected}")
    return scope.that


_OPERATORS = {
    "==": _operator.eq,
    "!=": _operator.ne,
    "<": _operator.lt,
    "<=": _operator.le,
    ">": _operator.gt,
    ">=": _operator.ge,
    "is": _operator.is_,
    "is not": _operator.is_not,
}


def operator_func(scope, op: str, expected: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("operator", op)
    context.set("expected", expected)
    compare = _OPERATORS.get(op)
    if compare is None:
        context.fatal("invalid operator {operator}")
    context.eval(compare(context.value, expected), eval_msg or "expected {value} {operator} {expected}")
    return scope.that


def _compare_func(compare: Callable[[Any, Any], bool], description: str, name: str):
    def _cmp_func(scope, expected: Any, eval_msg: MsgSource = None):
        context = scope.context
        _check_number(context, context.value, "value")
        _check_number(context, expected, "expected")
        context.set("expected", expected)
        context.eval(compare(context.value, expected), eval_msg or ("expected {value} to be " + description + " {expected}"))
        return scope.that

    _cmp_func.__name__ = name
    return _cmp_func


above_func = _compare_func(_operator.gt, "above", "above_func")
least_func = _compare_func(_operator.ge, "at least", "least_func")
below_func = _compare_func(_operator.lt, "below", "below_func")
most_func = _compare_func(_operator.le, "at most", "most_func")


def within_func(scope, start: Any, finish: Any, eval_msg: MsgSource = None):
    context = scope.context
    _check_number(context, context.value, "value")
    _check_number(context, start, "start")
    _check_number(context, finish, "finish")
    context.set("start", start)
    context.set("finish", finish)
    context.eval(start <= context.value <= finish, eval_msg or "expected {value} to be within {start}..{finish}")
    return scope.that


def close_to_func(scope, expected: Any, delta: Any, eval_msg: MsgSource = None):
    context = scope.context
    _check_number(context, context.value, "value", allow_dates=False)
    _check_number(context, expected, "expected", allow_dates=False)
    _check_number(context, delta, "delta", allow_dates=False)
    context.set("expected", expected)
    context.set("delta", delta)
    context.eval(abs(context.value - expected) <= delta,
                 eval_msg or "expected {value} to be close to {expected} +/- {delta}")
    return scope.that


def one_of_func(scope, values: Any, eval_msg: MsgSource = None):
    context = scope.context
    context.set("expected", values)
    if not isinstance(values, collections.abc.Container) or isinstance(values, str):
        context.fatal("expected {expected} to be a collection of values")
    found = any(context.value is item or context.value == item for item in values)
    context.eval(found, eval_msg or "expected {value} to be one of {expected}")
    return scope.that


# =================================================================
# Length, patterns and properties
# =================================================================

def length_func(scope, length: int, eval_msg: MsgSource = None):
    context = scope.context
    value = context.value
    if not isinstance(value, collections.abc.Sized):
        context.fatal("expected {value} to have a length, found {typeof(value)}")
    context.set("expected", length)
    context.set("length", len(value))
    context.eval(len(value) == length, eval_msg or "expected {value} to have a length of {expected} but got {length}")
    return scope.that


def match_func(scope, regex: Any, eval_msg: MsgSource = None):
    context = scope.context
    value = context.value
    context.set("regex", regex)
    if not isinstance(value, str):
        context.fatal("expected {value} to be a string, found {typeof(value)}")
    if not isinstance(regex, (str, re.Pattern)):
        context.fatal("expected {regex} to be a pattern or a string")
    context.eval(re.search(regex, value) is not None, eval_msg or "expected {value} to match {regex}")
    return scope.that


def _lookup_property(value: Any, name: Any, own: bool):
    """Returns (found, property value) for a mapping key or an attribute."""
    if isinstance(value, collections.abc.Mapping):
        if name in value:
            return True, value[name]
        return False, None
    if not isinstance(name, str):
        return False, None
    if own:
        attrs = _get_attrs(value)
        if name in attrs:
            return True, attrs[name]
        return False, None
    if hasattr(value, name):
        return True, getattr(value, name)
    return False, None


def _property_func(own: bool, deep: bool, name: str):
    kind = ("own " if own else "") + ("deep " if deep else "")

    def _prop_func(scope, prop: Any, *args):
        context = scope.context
        value = context.value
        if value is None:
            context.fatal("expected {value} to be an object or a mapping, found {typeof(value)}")

        context.set("property", prop)
        found, prop_value = _lookup_property(value, prop, own)
        eval_msg = args[1] if len(args) > 1 else None
        if args:
            expected = args[0]
            context.set("expected", expected)
            context.set("prop_value", prop_value)
            matched = found and (deep_equal(prop_value, expected, context=context) if deep
                                 else (prop_value is expected or prop_value == expected))
            context.eval(matched, eval_msg or (
                "expected {value} to have " + kind + "property {property} of {expected}, but got {prop_value}"))
        else:
            context.eval(found, eval_msg or ("expected {value} to have " + kind + "property {property}"))

        if found:
            return scope.new_inst(prop_value)
        return scope.that

    _prop_func.__name__ = name
    return _prop_func


has_property_func = _property_func(False, False, "has_property_func")
has_own_property_func = _property_func(True, False, "has_own_property_func")
has_deep_property_func = _property_func(False, True, "has_deep_property_func")
has_deep_own_property_func = _property_func(True, True, "has_deep_own_property_func")


def _keys_func(any_key: bool, name: str):
    def _keys(scope, *keys):
        context = scope.context
        expected = _as_key_list(keys)
        if not expected:
            context.fatal("expected at least one key to be given")
        actual = _obj_keys(context, context.value)
        context.set("expected", expected)
        context.set("keys", actual)
        present = [key for key in expected if key in actual]
        if any_key:
            found = len(present) > 0
            msg = "expected {value} to have any of the keys {expected}, found {keys}"
        elif context.get("include"):
            found = len(present) == len(expected)
            msg = "expected {value} to contain all of the keys {expected}, found {keys}"
        else:
            found = len(present) == len(expected) and len(set(actual)) == len(set(expected))
            msg = "expected {value} to have all of the keys {expected}, found {keys}"
        context.eval(found, msg)
        return scope.that

    _keys.__name__ = name
    return _keys


all_keys_func = _keys_func(False, "all_keys_func")
any_keys_func = _keys_func(True, "any_keys_func")


# =================================================================
# Members
# =================================================================

def _to_members(value: Any) -> Optional[List[Any]]:
    if classify(value) in (ValueKind.ARRAY_LIKE, ValueKind.SET_LIKE):
        return list(value)
    return None


def _same_members(actual: List[Any], expected: List[Any], eq) -> bool:
    if len(actual) != len(expected):
        return False
    remaining = list(expected)
    for item in actual:
        for idx, other in enumerate(remaining):
            if eq(item, other):
                del remaining[idx]
                break
        else:
            return False
    return True


def _same_ordered_members(actual: List[Any], expected: List[Any], eq) -> bool:
    return len(actual) == len(expected) and all(eq(x, y) for x, y in zip(actual, expected))


def _include_members(actual: List[Any], expected: List[Any], eq) -> bool:
    return all(any(eq(item, wanted) for item in actual) for wanted in expected)


def _include_ordered_members(actual: List[Any], expected: List[Any], eq) -> bool:
    size = len(expected)
    return any(
        all(eq(actual[start + idx], expected[idx]) for idx in range(size))
        for start in range(len(actual) - size + 1))


def _starts_with_members(actual: List[Any], expected: List[Any], eq) -> bool:
    return len(expected) <= len(actual) and all(eq(x, y) for x, y in zip(actual, expected))


def _ends_with_members(actual: List[Any], expected: List[Any], eq) -> bool:
    return len(expected) <= len(actual) and all(
        eq(x, y) for x, y in zip(actual[len(actual) - len(expected):], expected))


def _subsequence(actual: List[Any], expected: List[Any], eq) -> bool:
    found = 0
    for item in actual:
        if found < len(expected) and eq(item, expected[found]):
            found += 1
    return found == len(expected)


def _members_func(check: Callable[..., bool], verb: str, noun: str, name: str, deep: Optional[bool] = None):
    """
    Builds a member comparison. With `deep` left as None the `deep` flag set
    by an earlier `deep` modifier in the chain decides how members compare.
    """

    def _members(scope, expected: Any, eval_msg: MsgSource = None):
        context = scope.context
        use_deep = bool(context.get("deep")) if deep is None else deep
        context.set("expected", expected)
        actual = _to_members(context.value)
        if actual is None:
            context.fatal("expected {value} to be a sequence or a set, found {typeof(value)}")
        wanted = _to_members(expected)
        if wanted is None:
            context.fatal("expected argument ({expected}) to be a sequence or a set, found {typeof(expected)}")

        if use_deep:
            def eq(x, y):
                return deep_equal(x, y, context=context)
        else:
            def eq(x, y):
                return x is y or x == y

        context.eval(check(actual, wanted, eq), eval_msg or (
            "expected {value} to " + verb + ("deep " if use_deep else "") + noun + " {expected}"))
        return scope.that

    _members.__name__ = name
    return _members


same_members_func = _members_func(_same_members, "have the same ", "members as", "same_members_func")
same_ordered_members_func = _members_func(
    _same_ordered_members, "have the same ordered ", "members as", "same_ordered_members_func")
include_members_func = _members_func(_include_members, "include ", "members", "include_members_func")
include_ordered_members_func = _members_func(
    _include_ordered_members, "include ordered ", "members", "include_ordered_members_func")
starts_with_members_func = _members_func(
    _starts_with_members, "start with ", "members", "starts_with_members_func")
ends_with_members_func = _members_func(_ends_with_members, "end with ", "members", "ends_with_members_func")
subsequence_func = _members_func(_subsequence, "include ", "subsequence", "subsequence_func")

same_deep_members_func = _members_func(
    _same_members, "have the same ", "members as", "same_deep_members_func", deep=True)
same_deep_ordered_members_func = _members_func(
    _same_ordered_members, "have the same ordered ", "members as", "same_deep_ordered_members_func", deep=True)
include_deep_members_func = _members_func(
    _include_members, "include ", "members", "include_deep_members_func", deep=True)


# =================================================================
# Nested properties
# =================================================================

def parse_nested_path(path: str) -> List[str]:
    """
    Splits a nested property path into its names: `a.b[0].c` gives
    `["a", "b", "0", "c"]`. A backslash escapes the next character.
    """
    tokens = []
    current = []
    pending = True
    idx = 0
    while idx < len(path):
        ch = path[idx]
        idx += 1
        if ch == "\\" and idx < len(path):
            current.append(path[idx])
            idx += 1
            pending = True
        elif ch == ".":
            tokens.append("".join(current))
            current = []
            pending = True
        elif ch == "[" and path.find("]", idx) != -1:
            end = path.find("]", idx)
            if current:
                tokens.append("".join(current))
                current = []
            tokens.append(path[idx:end])
            idx = end + 1
            if idx < len(path) and path[idx] == ".":
                idx += 1
            pending = idx < len(path)
        else:
            current.append(ch)
            pending = True
    if pending:
        tokens.append("".join(current))
    return tokens


def _nested_step(current: Any, name: str):
    if isinstance(current, collections.abc.Mapping):
        if name in current:
            return True, current[name]
        if name.lstrip("-").isdigit() and int(name) in current:
            return True, current[int(name)]
        return False, None
    if classify(current) is ValueKind.ARRAY_LIKE:
        if name.lstrip("-").isdigit() and -len(current) <= int(name) < len(current):
            return True, current[int(name)]
        return False, None
    if is_primitive(current) or not name or name.startswith("_"):
        return False, None
    if hasattr(current, name):
        return True, getattr(current, name)
    return False, None


def get_nested_property(value: Any, path: str):
    """Returns (found, value) for a nested property path."""
    if value is None:
        return False, None
    current = value
    for name in parse_nested_path(path):
        found, current = _nested_step(current, name)
        if not found:
            return False, None
    return True, current


def _nested_property_func(deep: bool, name: str):
    kind = "deeply " if deep else ""

    def _nested_prop(scope, path: Any, *args):
        context = scope.context
        context.set("property", path)
        eval_msg = args[1] if len(args) > 1 else None
        if not isinstance(path, str):
            context.fatal("expected {property} to be a string using nested syntax")

        found, nested_value = get_nested_property(context.value, path)
        if args:
            expected = args[0]
            context.set("expected", expected)
            context.set("nested_value", nested_value)
            if deep:
                matched = found and deep_equal(nested_value, expected, context=context)
            else:
                matched = found and (nested_value is expected or nested_value == expected)
            context.eval(matched, eval_msg or (
                "expected {value} to have a nested property {property} " + kind + "equal {expected}, "
                "but got {nested_value}"))
        else:
            context.eval(found, eval_msg or "expected {value} to have a nested property {property}")

        if found:
            return scope.new_inst(nested_value)
        return scope.that

    _nested_prop.__name__ = name
    return _nested_prop


has_nested_property_func = _nested_property_func(False, "has_nested_property_func")
has_deep_nested_property_func = _nested_property_func(True, "has_deep_nested_property_func")


def _nested_include_func(deep: bool, name: str):
    kind = "deeply " if deep else ""

    def _nested_include(scope, expected: Any, eval_msg: MsgSource = None):
        context = scope.context
        if not isinstance(expected, collections.abc.Mapping):
            context.set("expected", expected)
            context.fatal("expected {expected} to be a mapping of nested paths")

        for path, wanted in expected.items():
            found, nested_value = get_nested_property(context.value, path)
            context.set("property", path)
            context.set("expected", wanted)
            context.set("nested_value", nested_value)
            if deep:
                matched = found and deep_equal(nested_value, wanted, context=context)
            else:
                matched = found and (nested_value is wanted or nested_value == wanted)
            context.eval(matched, eval_msg or (
                "expected {value} to have a nested property {property} " + kind + "equal {expected}, "
                "but got {nested_value}"))
        return scope.that

    _nested_include.__name__ = name
    return _nested_include


nested_include_func = _nested_include_func(False, "nested_include_func")
deep_nested_include_func = _nested_include_func(True, "deep_nested_include_func")


# =================================================================
# Errors
# =================================================================

def _error_matches(error: BaseException, expected: Any) -> bool:
    if isinstance(expected, type):
        return isinstance(error, expected)
    if isinstance(expected, BaseException):
        return error is expected or (type(error) is type(expected) and str(error) == str(expected))
    if isinstance(expected, re.Pattern):
        return expected.search(str(error)) is not None
    if isinstance(expected, str):
        return expected in str(error)
    return False


def throws_func(scope, *args):
    """
    `throws()`, `throws(ErrorType | error | msg_match)` or
    `throws(ErrorType | error, msg_match, eval_msg=None)`.
    """
    context = scope.context
    fn = context.value
    if not callable(fn):
        context.fatal("expected {value} to be a function")

    err_type = args[0] if len(args) > 0 else None
    err_msg = args[1] if len(args) > 1 else None
    eval_msg = args[2] if len(args) > 2 else None
    context.set("expected", err_type)
    if err_msg is not None:
        context.set("err_msg", err_msg)

    thrown = None
    try:
        fn()
    except Exception as e:
        thrown = e

    if thrown is None:
        context.eval(False, eval_msg or "expected {value} to throw an error")
        return scope.that

    context.set("thrown", thrown)
    matched = True
    if err_type is not None:
        matched = _error_matches(thrown, err_type)
    if matched and err_msg is not None:
        matched = _error_matches(thrown, err_msg)

    if err_type is None and err_msg is None:
        context.eval(True, eval_msg or "expected {value} to throw an error but {thrown} was thrown")
    elif err_msg is None:
        context.eval(matched, eval_msg or "expected {value} to throw {expected} but {thrown} was thrown")
    else:
        context.eval(matched, eval_msg or "expected {value} to throw {expected} with {err_msg} but {thrown} was thrown")

    return scope.new_inst(thrown)


# =================================================================
# Change tracking
# =================================================================

@dataclass
class ChangeResult:
    """What a monitored value did while the subject function ran."""
    property: Any
    initial: Any
    value: Any
    delta: Any = None


def _get_target_value(context, name: str, target: Any, prop: Any) -> Any:
    if callable(target):
        result = target()
    elif isinstance(target, collections.abc.Mapping):
        if prop not in target:
            context.set("target", target)
            context.fatal("expected {target} to have {property} property")
        result = target[prop]
    else:
        if not isinstance(prop, str) or not hasattr(target, prop):
            context.set("target", target)
            context.fatal("expected {target} to have {property} property")
        result = getattr(target, prop)
    context.set(name, result)
    return result


def _is_msg_source(value: Any) -> bool:
    return isinstance(value, str) or callable(value)


def _handle_change(scope, args, callback: Callable[[Any, ChangeResult, MsgSource], Any]):
    context = scope.context
    fn = context.value
    target = args[0] if args else None
    prop = None
    msg = None

    if target is None:
        context.set("target", target)
        scope.fatal("expected {target} to be a function or an object")

    if callable(target):
        if len(args) >= 2 and _is_msg_source(args[1]):
            msg = args[1]
    else:
        prop = args[1] if len(args) > 1 else None
        context.set("property", prop)
        if len(args) >= 3 and _is_msg_source(args[2]):
            msg = args[2]
        if not isinstance(prop, (str, int)) or isinstance(prop, bool):
            scope.fatal("expected property name ({property}) to be a string or a number")

    if not callable(fn):
        scope.fatal("expected {value} to be a function")

    initial = _get_target_value(context, "initial", target, prop)

    def _finish(_):
        final = _get_target_value(context, "final", target, prop)
        result = ChangeResult(prop, initial, final)
        if is_number(initial) and is_number(final):
            result.delta = final - initial
            context.set("delta", result.delta)
        return callback(context, result, msg)

    return do_await(fn(), _finish)


def changes_func(scope, *args):
    """`changes(fn, msg=None)` or `changes(target, prop, msg=None)`."""
    from tripwire.tripwire_ops import change_result_op

    def _check(context, result: ChangeResult, msg):
        changed = result.initial is not result.value and result.initial != result.value
        context.eval(changed, msg or (
            "expected {value} to change {property} from {initial} to a different value" if result.property is not None
            else "expected {value} to change the monitored value from {initial} to a different value"))
        return change_result_op(scope, result)

    return _handle_change(scope, args, _check)


def increases_func(scope, *args):
    from tripwire.tripwire_ops import change_result_op

    def _check(context, result: ChangeResult, msg):
        if not is_number(result.initial):
            scope.fatal("expected initial value ({initial}) to be a number")
        if not is_number(result.value):
            scope.fatal("expected final value ({final}) to be a number")
        context.eval(result.delta > 0, msg or (
            "expected {value} to increase {property} from {initial} but it changed by {delta}"
            if result.property is not None
            else "expected {value} to increase the monitored value from {initial} but it changed by {delta}"))
        return change_result_op(scope, result)

    return _handle_change(scope, args, _check)


def decreases_func(scope, *args):
    from tripwire.tripwire_ops import change_result_op

    def _check(context, result: ChangeResult, msg):
        if not is_number(result.initial):
            scope.fatal("expected initial value ({initial}) to be a number")
        if not is_number(result.value):
            scope.fatal("expected final value ({final}) to be a number")
        context.eval(result.delta < 0, msg or (
            "expected {value} to decrease {property} from {initial} but it changed by {delta}"
            if result.property is not None
            else "expected {value} to decrease the monitored value from {initial} but it changed by {delta}"))
        result.delta = -result.delta
        return change_result_op(scope, result)

    return _handle_change(scope, args, _check)


def _change_by_func(change_fn: Callable[..., Any], negate_by: bool, name: str):
    """`fn(target_fn, delta, msg=None)` or `fn(target, prop, delta, msg=None)`."""

    def _by_func(scope, *args):
        if args and callable(args[0]):
            change_args, rest = args[:1], args[1:]
        else:
            change_args, rest = args[:2], args[2:]
        delta = rest[0] if rest else None
        msg = rest[1] if len(rest) > 1 else None

        def _then_by(change_inst):
            if negate_by:
                return change_inst.not_.by(delta, msg)
            return change_inst.by(delta, msg)

        return do_await(change_fn(scope, *change_args), _then_by)

    _by_func.__name__ = name
    return _by_func


changes_by_func = _change_by_func(changes_func, False, "changes_by_func")
changes_but_not_by_func = _change_by_func(changes_func, True, "changes_but_not_by_func")
increases_by_func = _change_by_func(increases_func, False, "increases_by_func")
increases_but_not_by_func = _change_by_func(increases_func, True, "increases_but_not_by_func")
decreases_by_func = _change_by_func(decreases_func, False, "decreases_by_func")
decreases_but_not_by_func = _change_by_func(decreases_func, True, "decreases_but_not_by_func")
