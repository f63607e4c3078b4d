"""Field-path helpers for in-progress listing records.

A record is a flat mapping of dotted field paths to values. Repeated
sub-records (classifications) are stored as a list of dicts under their
own key and addressed as ``<key>.<index>.<field>``.
"""

import re
from collections.abc import Iterable, Mapping

_INDEXED_PATH = re.compile(r"^(?P<head>[A-Za-z_]\w*)\.(?P<index>\d+)\.(?P<tail>\w+)$")


def split_indexed(path: str) -> tuple[str, int, str] | None:
    """Split ``head.index.tail`` paths, returning None for plain paths."""
    match = _INDEXED_PATH.match(path)
    if match is None:
        return None
    return match["head"], int(match["index"]), match["tail"]


def template_of(path: str) -> str:
    """Return the rule template for a path (``a.0.b`` becomes ``a.*.b``)."""
    parts = split_indexed(path)
    if parts is None:
        return path
    head, _, tail = parts
    return f"{head}.*.{tail}"


def instantiate(template: str, index: int) -> str:
    """Fill a ``*`` template with a concrete entry index."""
    return template.replace("*", str(index), 1)


def index_of(path: str) -> int | None:
    parts = split_indexed(path)
    return None if parts is None else parts[1]


def get_value(record: Mapping[str, object], path: str) -> object | None:
    """Return the value at a field path, or None when absent."""
    parts = split_indexed(path)
    if parts is None:
        return record.get(path)
    head, index, tail = parts
    items = record.get(head)
    if not isinstance(items, list) or index >= len(items):
        return None
    entry = items[index]
    if not isinstance(entry, dict):
        return None
    return entry.get(tail)


def set_value(record: dict[str, object], path: str, value: object) -> None:
    """Set the value at a field path.

    Raises KeyError when an indexed path points past the end of its list.
    """
    parts = split_indexed(path)
    if parts is None:
        record[path] = value
        return
    head, index, tail = parts
    items = list(record.get(head) or [])
    if index >= len(items):
        raise KeyError(path)
    entry = dict(items[index]) if isinstance(items[index], dict) else {}
    entry[tail] = value
    items[index] = entry
    record[head] = items


def unflatten(fields: Mapping[str, object]) -> dict[str, object]:
    """Turn dotted field paths into a nested payload."""
    nested: dict[str, object] = {}
    for path in sorted(fields):
        node = nested
        *parents, leaf = path.split(".")
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[leaf] = fields[path]
    return nested


def flatten(nested: Mapping[str, object], paths: Iterable[str]) -> dict[str, object]:
    """Pick known field paths out of a nested payload."""
    fields: dict[str, object] = {}
    for path in paths:
        node: object = nested
        found = True
        for part in path.split("."):
            if isinstance(node, Mapping) and part in node:
                node = node[part]
            else:
                found = False
                break
        if found:
            fields[path] = node
    return fields
