"""Placeholders that pass earlier task results as arguments to later tasks.

A path such as ``one.object.array[1].value`` or ``one["key"]['a'][`b`].c[0]``
is parsed once into segments and resolved against the result store when the
task holding the placeholder is dispatched.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

_TOKEN = re.compile(
    r"""
    (?P<dot>\.)?(?P<field>[^.\[\]'"`]+)        # plain or dotted field
    | \[(?P<index>\d+)\]                        # [0]
    | \[(?P<quote>["'`])(?P<key>.*?)(?P=quote)\]  # ["key"] ['key'] [`key`]
    """,
    re.VERBOSE,
)


@dataclass(frozen=True, slots=True)
class Field:
    name: str


@dataclass(frozen=True, slots=True)
class Index:
    index: int


Segment = Field | Index


def parse_path(path: str) -> tuple[Segment, ...]:
    """Parse a dotted/bracketed path into segments.

    Raises:
        ValueError: If the path is empty or not well formed.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValueError(f"Invalid result path: {path!r}")
    segments: list[Segment] = []
    pos = 0
    while pos < len(path):
        match = _TOKEN.match(path, pos)
        if match is None or (match.group("dot") and not segments):
            raise ValueError(f"Invalid result path {path!r} at position {pos}")
        if match.group("field") is not None:
            if not match.group("dot") and segments:
                raise ValueError(f"Invalid result path {path!r} at position {pos}")
            segments.append(Field(match.group("field")))
        elif match.group("index") is not None:
            segments.append(Index(int(match.group("index"))))
        else:
            segments.append(Field(match.group("key")))
        pos = match.end()
    if not segments or not isinstance(segments[0], Field):
        raise ValueError(f"Result path must start with a task name: {path!r}")
    return tuple(segments)


def resolve_path(root: Any, segments: Sequence[Segment]) -> Any:
    """Walk ``root`` along ``segments``; missing steps resolve to ``None``."""
    value = root
    for segment in segments:
        if value is None:
            return None
        if isinstance(segment, Index):
            if isinstance(value, Mapping):
                value = value.get(segment.index)
            elif isinstance(value, Sequence) and not isinstance(value, str | bytes):
                value = value[segment.index] if segment.index < len(value) else None
            else:
                return None
        elif isinstance(value, Mapping):
            value = value.get(segment.name)
        else:
            value = getattr(value, segment.name, None)
    return value


class ResultArg:
    """Argument placeholder resolved from the result store at dispatch time."""

    __slots__ = ("_path", "_segments")

    def __init__(self, path: str):
        self._path = path
        self._segments = parse_path(path)

    @property
    def path(self) -> str:
        return self._path

    @property
    def segments(self) -> tuple[Segment, ...]:
        return self._segments

    def resolve(self, store: Mapping[str, Any] | None) -> Any:
        return resolve_path(store, self._segments)

    def __repr__(self) -> str:
        return f"ResultArg({self._path!r})"


def resolve_arguments(
    args: Sequence[Any], kwargs: Mapping[str, Any], store: Mapping[str, Any] | None
) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """Replace every :class:`ResultArg` in ``args``/``kwargs`` with its current value."""
    resolved_args = tuple(arg.resolve(store) if isinstance(arg, ResultArg) else arg for arg in args)
    resolved_kwargs = {
        key: value.resolve(store) if isinstance(value, ResultArg) else value
        for key, value in kwargs.items()
    }
    return resolved_args, resolved_kwargs
