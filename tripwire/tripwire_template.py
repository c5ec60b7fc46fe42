"""
The `{token}` mini-language used by assertion messages.

A template is split into literal text and tokens. `{{` is kept verbatim and
never starts a token, a `{` with no closing `}` is plain text, and a token
body that itself contains `{` gives up its opening brace as text.
"""
import re
from typing import Callable, List, Optional, Tuple

TEXT = "text"
TOKEN = "token"

TOKEN_OPS = ("len", "length", "typeof")

_NAME = r"[A-Za-z_$][\w$.]*"
_NAME_OP_RE = re.compile(r"^\s*(" + _NAME + r")\s*\(\s*(" + "|".join(TOKEN_OPS) + r")\s*\)\s*$")
_OP_NAME_RE = re.compile(r"^\s*(" + "|".join(TOKEN_OPS) + r")\s*\(\s*(" + _NAME + r")\s*\)\s*$")


def tokenize_template(message: str) -> List[Tuple[str, str]]:
    """Splits a template into ("text", s) and ("token", body) parts."""
    parts: List[Tuple[str, str]] = []
    text_start = 0
    start = 0
    length = len(message)

    while start < length:
        open_idx = message.find("{", start)
        if open_idx == -1:
            break
        if message.startswith("{{", open_idx):
            start = open_idx + 2
            continue
        close_idx = message.find("}", open_idx)
        if close_idx == -1:
            break
        body = message[open_idx + 1:close_idx]
        if "{" in body:
            start = open_idx + 1
            continue
        if open_idx > text_start:
            parts.append((TEXT, message[text_start:open_idx]))
        parts.append((TOKEN, body))
        text_start = start = close_idx + 1

    if text_start < length:
        parts.append((TEXT, message[text_start:]))
    return parts


def parse_token(body: str) -> Tuple[str, Optional[str]]:
    """Returns (name, op) for `name`, `name(op)` or `op(name)`."""
    match = _NAME_OP_RE.match(body)
    if match:
        return match.group(1), match.group(2)
    match = _OP_NAME_RE.match(body)
    if match:
        return match.group(2), match.group(1)
    return body.strip(), None


def render_template(message: str, resolve: Callable[[str], Optional[str]]) -> str:
    """
    Renders a template, replacing each token with `resolve(body)`. A token
    that resolves to None is left in place unchanged.
    """
    result = []
    for kind, text in tokenize_template(message):
        if kind == TOKEN:
            value = resolve(text)
            result.append("{" + text + "}" if value is None else value)
        else:
            result.append(text)
    return "".join(result)
