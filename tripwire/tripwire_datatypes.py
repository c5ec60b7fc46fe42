"""
Defines the core data types shared by the tripwire assertion engine.

This module provides the value classification used by the formatters and
predicates, the formatter records consumed by the format manager, and the
small handle types returned to callers.
"""

import collections.abc
import datetime
import enum
import inspect
import functools
import numbers
import re
import types
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union


MsgSource = Union[str, Callable[[], str], None]


def _dbg(*parts):
    import os, sys
    if os.environ.get("TRIPWIRE_DEBUG"):
        try:
            print("[DBG]", *parts, file=sys.stderr)
        except Exception:
            pass


# =================================================================
# Value classification
# =================================================================

class ValueKind(enum.Enum):
    """The closed set of shapes a value can take for formatting and predicates."""
    SCALAR = "scalar"
    STRING = "string"
    ARRAY_LIKE = "array"
    SET_LIKE = "set"
    MAP_LIKE = "map"
    PLAIN_OBJECT = "object"
    FUNCTION = "function"
    OTHER = "other"


def classify(value: Any) -> ValueKind:
    """Computes the ValueKind of a value once, checking the most specific shapes first."""
    if isinstance(value, str):
        return ValueKind.STRING
    if value is None or isinstance(value, (bool, numbers.Number, bytes, bytearray)):
        return ValueKind.SCALAR
    if type(value) is dict or isinstance(value, types.SimpleNamespace):
        return ValueKind.PLAIN_OBJECT
    if isinstance(value, collections.abc.Mapping):
        return ValueKind.MAP_LIKE
    if isinstance(value, collections.abc.Set):
        return ValueKind.SET_LIKE
    if isinstance(value, collections.abc.Sequence):
        return ValueKind.ARRAY_LIKE
    if inspect.isroutine(value) or inspect.isclass(value) or isinstance(value, functools.partial):
        return ValueKind.FUNCTION
    return ValueKind.OTHER


def is_primitive(value: Any) -> bool:
    return classify(value) in (ValueKind.SCALAR, ValueKind.STRING)


def is_number(value: Any) -> bool:
    """True for real numbers, excluding bool which Python treats as an int."""
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def is_date(value: Any) -> bool:
    return isinstance(value, (datetime.date, datetime.time))


def is_regex(value: Any) -> bool:
    return isinstance(value, re.Pattern)


def get_fn_name(fn: Any, default: str = "anonymous") -> str:
    """Returns the display name of a callable."""
    if isinstance(fn, functools.partial):
        return get_fn_name(fn.func, default)
    return getattr(fn, "__name__", None) or getattr(fn, "display_name", None) or default


# =================================================================
# Formatter records
# =================================================================

class FormatResult(enum.Enum):
    OK = "ok"
    CONTINUE = "continue"
    SKIP = "skip"
    FAILED = "failed"


@dataclass
class FormattedValue:
    """The outcome of one formatter attempt."""
    res: FormatResult
    val: Optional[str] = None
    err: Optional[BaseException] = None


@dataclass
class Formatter:
    """A named formatter; `value(ctx, v)` returns a FormattedValue or None to pass."""
    name: str
    value: Callable[[Any, Any], Optional[FormattedValue]]


class Removable:
    """A handle that undoes a registration when `rm()` is called."""

    def __init__(self, remove_fn: Callable[[], None]):
        self._remove_fn = remove_fn

    def rm(self):
        """Runs the removal once; later calls are no-ops."""
        if self._remove_fn is not None:
            remove_fn, self._remove_fn = self._remove_fn, None
            remove_fn()

    def __repr__(self) -> str:
        return f"<Removable active={self._remove_fn is not None}>"
