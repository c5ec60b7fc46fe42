"""
The exception hierarchy raised by tripwire.

`TripwireError` reports misuse of the library itself, `AssertionFailure` a
subject that did not meet its expectation and `AssertionFatal` a malformed
precondition. All of them are `AssertionError` subclasses so test runners
report them as assertion failures.
"""
import json
from typing import Any, Dict, Iterable, Optional

from tripwire.tripwire_datatypes import _dbg
from tripwire.tripwire_stack import StackTracker, capture_stack, format_stack


def _format_props(props: Any, opts=None) -> str:
    if not isinstance(props, dict) or not props:
        return ""

    # Imported here, the printer depends on the config which depends on this module
    from tripwire.tripwire_config import assert_config
    from tripwire.tripwire_printer import format_value

    cfg = opts if opts is not None else assert_config
    parts = []
    left_over = {}
    op_path = props.get("op_path")
    if op_path:
        parts.append(f'running "{"->".join(str(p) for p in op_path)}"')
    if props.get("actual") is not None:
        parts.append(f"with ({format_value(cfg, props['actual'], finalize=False)})")
    for key, value in props.items():
        if key not in ("op_path", "actual", "operation", "show_diff"):
            left_over[key] = value
    if left_over:
        try:
            parts.append("and props: " + json.dumps(left_over, default=repr))
        except (TypeError, ValueError):
            parts.append("and props: " + format_value(cfg, left_over, finalize=False))

    return (" ::: " + " ".join(parts)) if parts else ""


class TripwireError(AssertionError):
    """Base error for the assertion engine."""

    def __init__(self, message: str = "", props: Optional[Dict[str, Any]] = None,
                 stack_start: Optional[Iterable[Any]] = None,
                 inner_exception: Optional[BaseException] = None, opts=None):
        super().__init__(message)
        self._message = message or ""
        self.props = props
        self._opts = opts
        self.inner_exception = inner_exception
        if inner_exception is not None:
            self.__cause__ = inner_exception

        self.full_stack = format_stack(capture_stack())
        if stack_start is not None:
            tracker = StackTracker(stack_start).push(TripwireError.__init__)
            self.stack = format_stack(capture_stack(tracker))
        else:
            self.stack = self.full_stack
        _dbg("raise", type(self).__name__, self._message)

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return self._message

    @property
    def details(self) -> Optional[Dict[str, Any]]:
        return self.props

    def __str__(self) -> str:
        text = self._message + _format_props(self.props, self._opts)
        if self.inner_exception is not None:
            text += f"\n\nCaused by: {type(self.inner_exception).__name__}: {self.inner_exception}"
        return text

    def to_json(self, stack: bool = False) -> Dict[str, Any]:
        result = {
            "name": self.name,
            "message": self._message,
            "props": self.props,
        }
        if self.inner_exception is not None:
            inner = self.inner_exception
            result["inner_exception"] = inner.to_json(stack) if isinstance(inner, TripwireError) else {
                "name": type(inner).__name__,
                "message": str(inner),
            }
        if stack:
            result["stack"] = self.stack
        return result


class AssertionFailure(TripwireError):
    """The subject did not meet the expectation."""
    pass


class AssertionFatal(AssertionFailure):
    """The assertion was invoked with a value or argument it cannot evaluate."""
    pass
