"""
Tracks the engine functions whose frames are hidden from failure stacks.
"""
import collections.abc
import functools
import sys
import traceback
from typing import Any, Iterable, List, Optional


def _code_of(fn: Any):
    """Finds the code object a frame would run for `fn`, if any."""
    seen = 0
    while fn is not None and seen < 8:
        seen += 1
        if isinstance(fn, functools.partial):
            fn = fn.func
            continue
        code = getattr(fn, "__code__", None)
        if code is not None:
            return code
        if hasattr(fn, "__func__"):
            fn = fn.__func__
            continue
        fn = getattr(fn, "__wrapped__", None)
    return None


def _key_of(fn: Any):
    code = _code_of(fn)
    return code if code is not None else fn


class StackTracker(collections.abc.Sequence):
    """
    An ordered, de-duplicated list of functions. Entries are compared by the
    code object they run so that closures created per call collapse into one.
    """

    def __init__(self, parent: Optional[Iterable[Any]] = None):
        self._fns: List[Any] = list(parent) if parent is not None else []

    def __getitem__(self, index):
        return self._fns[index]

    def __len__(self) -> int:
        return len(self._fns)

    def _index(self, fn) -> int:
        key = _key_of(fn)
        for idx, existing in enumerate(self._fns):
            if _key_of(existing) is key or existing is fn:
                return idx
        return -1

    def push(self, *fns) -> "StackTracker":
        """Appends each function that is not already tracked."""
        for fn in fns:
            if fn is not None and self._index(fn) == -1:
                self._fns.append(fn)
        return self

    def unshift(self, *fns) -> "StackTracker":
        """Moves each function to the front, adding it when missing."""
        for fn in fns:
            if fn is None:
                continue
            idx = self._index(fn)
            if idx != -1:
                del self._fns[idx]
            self._fns.insert(0, fn)
        return self

    def child(self) -> "StackTracker":
        return StackTracker(self._fns)

    def codes(self) -> set:
        return {code for code in (_code_of(fn) for fn in self._fns) if code is not None}

    def __repr__(self) -> str:
        return f"StackTracker({[getattr(fn, '__name__', fn) for fn in self._fns]!r})"


def capture_stack(stack_start: Optional[Iterable[Any]] = None) -> traceback.StackSummary:
    """
    Captures the current call stack, most recent call last. When `stack_start`
    is given the stack is cut before the outermost frame that runs one of the
    tracked functions, so only the caller's frames remain.
    """
    # The innermost frame is always the caller of capture_stack
    frames = list(traceback.walk_stack(sys._getframe(1)))
    if stack_start is not None:
        tracker = stack_start if isinstance(stack_start, StackTracker) else StackTracker().push(*stack_start)
        codes = tracker.codes()
        cut = 0
        for code in codes:
            # walk_stack yields innermost first; the first hit is the latest call
            for idx, (frame, _) in enumerate(frames):
                if frame.f_code is code:
                    cut = max(cut, idx + 1)
                    break
        if cut < len(frames):
            frames = frames[cut:]
    summary = traceback.StackSummary.extract(frames)
    summary.reverse()
    return summary


def format_stack(summary: traceback.StackSummary) -> str:
    return "".join(summary.format())
