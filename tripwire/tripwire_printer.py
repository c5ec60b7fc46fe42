"""
Formats arbitrary Python values into short, single-line strings for
assertion messages.

Formatting is layered: custom formatters registered on a FormatManager (and
its parents) are tried before the built-in formatters, each returning a
FormattedValue. The first OK result wins, otherwise the last CONTINUE.
"""
import enum
import inspect
from typing import Any, Callable, List, Optional, Union

from tripwire.tripwire_datatypes import (
    Formatter, FormattedValue, FormatResult, Removable, ValueKind,
    classify, is_date, is_regex, is_primitive, _dbg,
)

_ESC = "\x1b"


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        try:
            return repr(value)
        except Exception:
            return object.__repr__(value)


def _try_to_string(value: Any) -> Optional[str]:
    """Returns `str(value)` when the value's class defines its own __str__."""
    if type(value).__str__ is object.__str__:
        return None
    try:
        text = str(value)
    except Exception:
        return None
    if text.startswith("<") and " object at 0x" in text:
        return None
    return text


def escape_ansi(text: str) -> str:
    return text.replace(_ESC, "\\x1b")


def finalize_text(cfg, text: str) -> str:
    """Applies the configured finalization to a fully rendered message."""
    fmt = cfg.format
    if not fmt.finalize:
        return text
    finalize_fn = fmt.finalize_fn
    if callable(finalize_fn):
        return finalize_fn(text)
    return escape_ansi(text)


class FormatManager:
    """An ordered list of custom formatters, falling back to a parent manager."""

    def __init__(self, parent: Optional["FormatManager"] = None):
        self._formatters: List[Formatter] = []
        self._parent = parent

    @property
    def parent(self) -> Optional["FormatManager"]:
        return self._parent

    def add_formatter(self, formatter: Union[Formatter, List[Formatter]]) -> Removable:
        """Adds one or more formatters, returning a handle that removes them again."""
        added = list(formatter) if isinstance(formatter, (list, tuple)) else [formatter]
        for item in added:
            if item is not None and item not in self._formatters:
                self._formatters.append(item)
        return Removable(lambda: self.remove_formatter(added))

    def remove_formatter(self, formatter: Union[Formatter, List[Formatter]]):
        removed = formatter if isinstance(formatter, (list, tuple)) else [formatter]
        self._formatters = [f for f in self._formatters if not any(f is r for r in removed)]

    def get_formatters(self) -> List[Formatter]:
        result = list(self._formatters)
        if self._parent is not None:
            result.extend(self._parent.get_formatters())
        return result

    def for_each(self, callback: Callable[[Formatter], Optional[int]]) -> bool:
        """
        Calls `callback` for each own formatter and then each parent formatter.
        Returns True when the callback stopped the iteration by returning -1.
        """
        for formatter in list(self._formatters):
            if callback(formatter) == -1:
                return True
        if self._parent is not None:
            return self._parent.for_each(callback)
        return False

    def reset(self):
        self._formatters = []

    def __repr__(self) -> str:
        return f"<FormatManager own={len(self._formatters)} parent={self._parent is not None}>"


class FormatContext:
    """Per-call formatting state: the config and the values currently being rendered."""

    def __init__(self, cfg):
        self.cfg = cfg
        self._visited: List[Any] = []

    def _is_visited(self, value) -> bool:
        if is_primitive(value):
            return False
        for item in reversed(self._visited):
            if item is value:
                return True
        return False

    def format(self, value: Any) -> str:
        """Formats a nested value, guarding against cycles and runaway depth."""
        if self._is_visited(value) or len(self._visited) >= self.cfg.format.max_format_depth:
            circular_msg = self.cfg.circular_msg
            return (circular_msg() if callable(circular_msg) else circular_msg) or ""

        self._visited.append(value)
        try:
            return _do_format(self, value)
        finally:
            self._visited.pop()


class _FormatRun:
    """Runs formatters in order, remembering the best result so far."""

    def __init__(self, ctx: FormatContext, value: Any):
        self.ctx = ctx
        self.value = value
        self.result: Optional[FormattedValue] = None

    def __call__(self, formatter: Formatter) -> Optional[int]:
        try:
            formatted = formatter.value(self.ctx, self.value)
            if formatted is not None and formatted.res in (FormatResult.OK, FormatResult.CONTINUE):
                self.result = formatted
                if formatted.res is FormatResult.OK:
                    return -1
        except Exception as e:
            _dbg("formatter failed", formatter.name, type(e).__name__, e)
            self.result = FormattedValue(FormatResult.FAILED, err=e)
        return None


def _do_format(ctx: FormatContext, value: Any) -> str:
    run = _FormatRun(ctx, value)
    if not ctx.cfg.format_mgr.for_each(run):
        for formatter in DEFAULT_FORMATTERS:
            if run(formatter) == -1:
                break

    result = run.result
    if result is None:
        return _safe_str(value)
    if result.res is FormatResult.FAILED:
        return repr(result.err)
    return result.val if result.val is not None else ""


def format_value(cfg, value: Any, finalize: bool = True) -> str:
    """Formats `value` using the config's formatters and limits."""
    try:
        text = FormatContext(cfg).format(value)
    except Exception as e:
        _dbg("format_value degraded", type(e).__name__, e)
        text = _safe_str(value)
    return finalize_text(cfg, text) if finalize else text


# =================================================================
# Built-in formatters
# =================================================================

def _ok(text: str) -> FormattedValue:
    return FormattedValue(FormatResult.OK, val=text)


def _format_items(ctx: FormatContext, items, render) -> List[str]:
    max_props = ctx.cfg.format.max_props
    parts = []
    for idx, item in enumerate(items):
        if idx >= max_props:
            parts.append("...")
            break
        parts.append(render(item))
    return parts


def _format_key(key: Any, quote_spaces: bool = False) -> str:
    if isinstance(key, str):
        if quote_spaces and " " in key:
            return f'"{key}"'
        return key
    return "[" + _safe_str(key) + "]"


def _format_entries(ctx: FormatContext, entries, quote_spaces: bool = False) -> str:
    parts = _format_items(
        ctx, entries,
        lambda kv: _format_key(kv[0], quote_spaces) + ":" + ctx.format(kv[1]))
    return "{" + ",".join(parts) + "}"


def _fmt_string(ctx, value):
    if isinstance(value, str):
        return _ok('"' + value + '"')
    return None


def _fmt_plain_object(ctx, value):
    if classify(value) is ValueKind.PLAIN_OBJECT:
        items = value.items() if isinstance(value, dict) else vars(value).items()
        return _ok(_format_entries(ctx, list(items)))
    return None


def _fmt_array(ctx, value):
    if classify(value) is ValueKind.ARRAY_LIKE:
        parts = _format_items(ctx, value, ctx.format)
        if isinstance(value, tuple):
            if len(value) == 1:
                return _ok("(" + parts[0] + ",)")
            return _ok("(" + ",".join(parts) + ")")
        return _ok("[" + ",".join(parts) + "]")
    return None


def _fmt_error(ctx, value):
    if isinstance(value, BaseException):
        return _ok("[" + type(value).__name__ + ":" + ctx.format(_safe_str(value)) + "]")
    return None


def _fmt_error_type(ctx, value):
    if inspect.isclass(value) and issubclass(value, BaseException):
        return _ok(value.__name__ + "()")
    return None


def _fmt_function(ctx, value):
    if classify(value) is ValueKind.FUNCTION:
        if inspect.isclass(value):
            return _ok("[Class:" + value.__name__ + "]")
        target = getattr(value, "func", value)
        name = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
        return _ok("[Function" + (":" + name if name else "") + "]")
    return None


def _fmt_date(ctx, value):
    if is_date(value):
        return _ok('[Date:"' + value.isoformat() + '"]')
    return None


def _fmt_set(ctx, value):
    if classify(value) is ValueKind.SET_LIKE:
        try:
            items = sorted(value)
        except TypeError:
            items = list(value)
        return _ok("Set:{" + ",".join(_format_items(ctx, items, ctx.format)) + "}")
    return None


def _fmt_map(ctx, value):
    if classify(value) is ValueKind.MAP_LIKE:
        return _ok("Map:" + _format_entries(ctx, list(value.items()), quote_spaces=True))
    return None


_REGEX_FLAGS = (("i", 2), ("m", 8), ("s", 16), ("x", 64))


def _fmt_regex(ctx, value):
    if is_regex(value):
        flags = "".join(ch for ch, bit in _REGEX_FLAGS if value.flags & bit)
        pattern = value.pattern if isinstance(value.pattern, str) else _safe_str(value.pattern)
        return _ok("/" + pattern + "/" + flags)
    return None


def _fmt_symbol(ctx, value):
    if isinstance(value, enum.Enum):
        return _ok("[" + type(value).__name__ + "." + value.name + "]")
    return None


def _get_obj_attrs(value: Any, max_depth: int) -> List[tuple]:
    attrs = {}
    for cls in type(value).__mro__[:max_depth]:
        slots = cls.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if not name.startswith("_") and name not in attrs and hasattr(value, name):
                attrs[name] = getattr(value, name)
    for name, item in getattr(value, "__dict__", {}).items():
        if not name.startswith("_"):
            attrs[name] = item
    return list(attrs.items())


def _fmt_constructor(ctx, value):
    if classify(value) is not ValueKind.OTHER or inspect.ismodule(value):
        return None
    if not hasattr(value, "__dict__") and not any("__slots__" in cls.__dict__ for cls in type(value).__mro__[:-1]):
        return None

    cls_name = type(value).__name__
    prefix = "" if cls_name == "object" else cls_name + ":"
    attrs = _get_obj_attrs(value, ctx.cfg.format.max_proto_depth)
    if attrs:
        return _ok("[" + prefix + _format_entries(ctx, attrs) + "]")
    text = _try_to_string(value)
    if text is not None:
        return _ok("[" + prefix + text + "]")
    return _ok("[" + prefix + "{}]")


def _fmt_to_string(ctx, value):
    text = _try_to_string(value)
    if text is not None:
        return _ok(text)
    return None


def _fmt_fallback(ctx, value):
    if is_primitive(value):
        return _ok(_safe_str(value))
    text = _try_to_string(value)
    return _ok(text if text is not None else repr(value))


DEFAULT_FORMATTERS = (
    Formatter("String", _fmt_string),
    Formatter("PlainObject", _fmt_plain_object),
    Formatter("Array", _fmt_array),
    Formatter("Error", _fmt_error),
    Formatter("ErrorType", _fmt_error_type),
    Formatter("Function", _fmt_function),
    Formatter("Date", _fmt_date),
    Formatter("Set", _fmt_set),
    Formatter("Map", _fmt_map),
    Formatter("RegExp", _fmt_regex),
    Formatter("Symbol", _fmt_symbol),
    Formatter("Constructor", _fmt_constructor),
    Formatter("ToString", _fmt_to_string),
    Formatter("Fallback", _fmt_fallback),
)
