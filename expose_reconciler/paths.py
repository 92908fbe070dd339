"""
Field paths — addressing one leaf or subsection of an extracted record.

A path is an explicit ordered list of segments. Mapping keys are strings;
portfolio entries are addressed by integer index segments and rendered as
``portfolio[3].city``.

Mutation only walks mappings. Index segments are understood by the parser
(so comparison reports can name portfolio entries) but no verification
finding has ever addressed a list element, and list-element mutation has
no agreed semantics. ``set_at_path`` therefore raises UnsupportedPathError
for them instead of guessing.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any, Union

from .exceptions import UnsupportedPathError

Segment = Union[str, int]

_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


@dataclass(frozen=True)
class FieldPath:
    """Immutable ordered sequence of path segments."""

    segments: tuple[Segment, ...]

    @classmethod
    def parse(cls, text: str) -> FieldPath:
        """Parse ``"a.b[2].c"`` into ``("a", "b", 2, "c")``.

        Raises:
            ValueError: If the text is empty or has no usable segments.
        """
        if not text or not text.strip():
            raise ValueError("Empty field path")

        segments: list[Segment] = []
        for name, index in _TOKEN.findall(text.strip()):
            segments.append(int(index) if index else name.strip())

        if not segments or any(s == "" for s in segments):
            raise ValueError(f"Malformed field path: {text!r}")
        return cls(tuple(segments))

    @classmethod
    def of(cls, *segments: Segment) -> FieldPath:
        return cls(tuple(segments))

    def child(self, segment: Segment) -> FieldPath:
        return FieldPath(self.segments + (segment,))

    @property
    def has_index(self) -> bool:
        return any(isinstance(s, int) for s in self.segments)

    def __str__(self) -> str:
        out = ""
        for seg in self.segments:
            if isinstance(seg, int):
                out += f"[{seg}]"
            else:
                out += f".{seg}" if out else seg
        return out


def _as_path(path: FieldPath | str) -> FieldPath:
    return path if isinstance(path, FieldPath) else FieldPath.parse(path)


def get_at_path(record: Any, path: FieldPath | str) -> Any:
    """Resolve a path against a record. Anything unreachable resolves to None."""
    current = record
    for seg in _as_path(path).segments:
        if isinstance(seg, int):
            if not isinstance(current, list) or seg >= len(current):
                return None
            current = current[seg]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(seg)
    return current


def set_at_path(record: Any, path: FieldPath | str, value: Any) -> None:
    """Set ``value`` at ``path`` IN PLACE, creating intermediate mappings as needed.

    A missing or null intermediate node is replaced by an empty mapping.

    Raises:
        UnsupportedPathError: If the path contains an index segment, or an
            intermediate node (or the record itself) is not a mapping.
    """
    parsed = _as_path(path)
    if parsed.has_index:
        raise UnsupportedPathError(
            f"Field path '{parsed}' addresses a list element; only mapping paths can be set",
            {"path": str(parsed)},
        )
    if not isinstance(record, MutableMapping):
        raise UnsupportedPathError(
            f"Cannot set '{parsed}' on a {type(record).__name__} record",
            {"path": str(parsed), "record_type": type(record).__name__},
        )

    current = record
    for seg in parsed.segments[:-1]:
        node = current.get(seg)
        if node is None:
            node = {}
            current[seg] = node
        elif not isinstance(node, MutableMapping):
            raise UnsupportedPathError(
                f"Cannot descend into '{seg}' of '{parsed}': "
                f"it holds a {type(node).__name__}, not a mapping",
                {"path": str(parsed), "segment": seg},
            )
        current = node

    current[parsed.segments[-1]] = value
