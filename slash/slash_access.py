"""
Index-path access into nested lists and dictionaries (/getat, /setat).

Reads take list elements the way `list.slice(offset)[0]` does in the chat
host: offsets are truncated to integers, negative offsets count from the end
and clamp at the start, and anything past the end is missing. Values that
turn out to be JSON text are decoded on the way down.
"""

import math
import re
import collections.abc
from typing import Any, List

from slash.slash_datatypes import IndexPathError
from slash.slash_serialize import parse_or_keep, try_parse_json
from slash.slash_values import is_nan, js_number, js_string

_CANONICAL_INDEX = re.compile(r'^(?:0|[1-9][0-9]*)$')

# an absent step, as opposed to a stored null
MISSING = object()


def index_path(raw: Any) -> List[Any]:
    """Normalize an `index=` argument (token or JSON list of tokens) into a path."""
    if raw is None:
        raise IndexPathError("index is required")
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if not isinstance(raw, str):
        return [raw]
    ok, parsed = try_parse_json(raw)
    if not ok or parsed is None:
        return [raw]
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def is_numeric_token(token: Any) -> bool:
    return not is_nan(js_number(token))


def _slice_first(seq: list, token: Any) -> Any:
    n = js_number(token)
    if is_nan(n):
        n = 0
    if math.isinf(n):
        if n > 0:
            return MISSING
        n = 0
    n = int(n)
    if n < 0:
        n = max(len(seq) + n, 0)
    return seq[n] if n < len(seq) else MISSING


def _exact_index(token: Any):
    """Array index named by `token`, or None if it does not name one."""
    key = js_string(token)
    if _CANONICAL_INDEX.match(key):
        return int(key)
    return None


def _read(container: Any, token: Any) -> Any:
    if isinstance(container, list):
        idx = _exact_index(token)
        if idx is None or idx >= len(container):
            return MISSING
        return container[idx]
    if isinstance(container, collections.abc.Mapping):
        return container.get(js_string(token), MISSING)
    if isinstance(container, str):
        idx = _exact_index(token)
        if idx is None or idx >= len(container):
            return MISSING
        return container[idx]
    return MISSING


def _write(container: Any, token: Any, value: Any):
    if isinstance(container, list):
        n = js_number(token)
        if is_nan(n) or math.isinf(n) or n < 0 or int(n) != n:
            raise IndexPathError(f"cannot use {js_string(token)!r} as a list index")
        idx = int(n)
        if idx >= len(container):
            container.extend([None] * (idx + 1 - len(container)))
        container[idx] = value
        return
    if isinstance(container, collections.abc.MutableMapping):
        container[js_string(token)] = value
        return
    kind = 'null' if container is None else type(container).__name__
    raise IndexPathError(f"cannot set {js_string(token)!r} on a {kind} value")


def get_at(collection: Any, path: List[Any], default: Any = None) -> Any:
    """Walk `path` down `collection`. Returns `default` when a step is missing;
    a stored null comes back as None."""
    result = collection
    for token in path:
        if result is None or result is MISSING:
            return default
        if isinstance(result, list):
            result = _slice_first(result, token)
        else:
            result = _read(result, token)
        result = parse_or_keep(result)
    return default if result is MISSING else result


def set_at(collection: Any, path: List[Any], value: Any) -> Any:
    """
    Assign `value` at `path` inside `collection` and return the top-level
    collection. Missing intermediate steps are created on the way: a list when
    the following token is numeric, otherwise a dictionary. A missing
    top-level collection is created the same way from the first token.
    """
    path = list(path)
    if not path:
        raise IndexPathError("index is required")
    if collection is None:
        collection = [] if is_numeric_token(path[0]) else {}

    current = collection
    last = len(path) - 1
    for pos, token in enumerate(path):
        if pos == last:
            _write(current, token, value)
            break
        child = _read(current, token)
        if child is None or child is MISSING:
            child = [] if is_numeric_token(path[pos + 1]) else {}
            _write(current, token, child)
        elif isinstance(child, str):
            ok, parsed = try_parse_json(child)
            if ok:
                _write(current, token, parsed)
                child = parsed
        current = child
    return collection
