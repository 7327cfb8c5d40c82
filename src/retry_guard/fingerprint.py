"""retry_guard.fingerprint

Stable identity keys for tool invocations.

Two calls with the same tool name and logically equal parameters get the same
fingerprint regardless of mapping key order. Sequence order and primitive
values are significant.
"""

from __future__ import annotations

import json
from hashlib import sha256
from typing import Any, List, Optional, Set, Tuple

# A container that contains itself is written as this marker at the point
# where it repeats. Nesting depth is otherwise unbounded.
_CYCLE_MARKER = json.dumps("__cycle__")

_VALUE, _TEXT, _LEAVE = 0, 1, 2

_CONTAINERS = (list, tuple, set, frozenset, dict)


def _encode_leaf(obj: Any) -> Optional[str]:
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return json.dumps(obj, ensure_ascii=False)
    if isinstance(obj, bytes):
        return '{"__bytes__":"%s"}' % sha256(obj).hexdigest()
    if not isinstance(obj, _CONTAINERS):
        return json.dumps(str(obj), ensure_ascii=False)
    return None


def _stable_json_dumps(obj: Any, _active: Optional[Set[int]] = None) -> str:
    """Compact JSON for `obj` with mapping keys sorted at every level.

    Works with an explicit stack, so deeply nested input does not hit the
    recursion limit. `_active` holds ids of the containers on the current
    path; a container met again while still open is a cycle.
    """
    active: Set[int] = set() if _active is None else _active
    out: List[str] = []
    stack: List[Tuple[int, Any]] = [(_VALUE, obj)]

    while stack:
        kind, item = stack.pop()
        if kind == _TEXT:
            out.append(item)
            continue
        if kind == _LEAVE:
            active.discard(item)
            continue

        leaf = _encode_leaf(item)
        if leaf is not None:
            out.append(leaf)
            continue
        if id(item) in active:
            out.append(_CYCLE_MARKER)
            continue

        active.add(id(item))
        if isinstance(item, (set, frozenset)):
            # Unordered: encode members first, then order by their encoding.
            members = sorted(_stable_json_dumps(x, active) for x in item)
            active.discard(id(item))
            out.append("[" + ",".join(members) + "]")
            continue

        work: List[Tuple[int, Any]] = []
        if isinstance(item, dict):
            entries = {}
            for k, v in item.items():
                entries[str(k)] = v
            work.append((_TEXT, "{"))
            for i, k in enumerate(sorted(entries)):
                prefix = "," if i else ""
                work.append((_TEXT, prefix + json.dumps(k, ensure_ascii=False) + ":"))
                work.append((_VALUE, entries[k]))
            work.append((_TEXT, "}"))
        else:
            work.append((_TEXT, "["))
            for i, x in enumerate(item):
                if i:
                    work.append((_TEXT, ","))
                work.append((_VALUE, x))
            work.append((_TEXT, "]"))
        work.append((_LEAVE, id(item)))
        stack.extend(reversed(work))

    return "".join(out)


def fingerprint(tool_name: str, parameters: Any = None) -> str:
    """Identity key for `tool_name` called with `parameters`.

    Missing parameters are treated as an empty mapping, so
    fingerprint("ls") == fingerprint("ls", {}).
    """
    if parameters is None:
        parameters = {}
    return f"{tool_name}:{_stable_json_dumps(parameters)}"


def fingerprint_digest(key: str) -> str:
    """Short digest of a fingerprint, safe to put in telemetry."""
    return sha256(key.encode("utf-8")).hexdigest()[:16]
