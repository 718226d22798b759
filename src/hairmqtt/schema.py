"""Locate telemetry fields inside the session document.

Home Assistant reads session sensors from the published session document
with a template such as ``{{ value_json.weekend_info.track_name }}``. The
path is found by a depth-first search of the empty session shape for the
first key matching the field name.

Field names are not guaranteed to be unique in the document; when two keys
share a name the first one visited wins. That is a best guess and callers
that care should override the template.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from .session import default_session, to_snake_case

# Array slot used when the caller does not name one
DEFAULT_DISAMBIGUATION_INDEX = 0


def _key_matches(key: Any, field_name: str, snake_name: str) -> bool:
    return key == field_name or key == snake_name


def _search(
    node: Any, field_name: str, snake_name: str, index: int, path: list[str]
) -> bool:
    if isinstance(node, dict):
        for key, value in node.items():
            path.append(str(key))
            if _key_matches(key, field_name, snake_name):
                return True
            if _search(value, field_name, snake_name, index, path):
                return True
            path.pop()
        return False

    if isinstance(node, (list, tuple)):
        # Only the selected slot is inspected; other elements never are.
        if not 0 <= index < len(node):
            return False
        path.append(str(index))
        if _search(node[index], field_name, snake_name, index, path):
            return True
        path.pop()
        return False

    return False


def find_path(document: Any, field_name: str, index: int) -> Optional[str]:
    """Return the dotted path of ``field_name`` inside ``document``.

    Arrays are entered only through the element at ``index``; an index that
    is out of range dead-ends that branch. Returns None when no key matches.
    """
    path: list[str] = []
    if _search(document, field_name, to_snake_case(field_name), index, path):
        return ".".join(path)
    return None


@lru_cache(maxsize=512)
def resolve_path(
    field_name: str, index: int = DEFAULT_DISAMBIGUATION_INDEX
) -> Optional[str]:
    """Return the dotted path of ``field_name`` in the session document.

    >>> resolve_path("TrackName")
    'weekend_info.track_name'
    """
    return find_path(default_session(), field_name, index)


__all__ = ["DEFAULT_DISAMBIGUATION_INDEX", "find_path", "resolve_path"]
