"""Result store helpers.

The result store is any mutable mapping supplied by the caller. It is shared
by reference, so queues that hand a run over to each other usually write into
the same object; distinct stores are merged on transfer.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any

ResultStore = MutableMapping[str, Any]


def _copy_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return merge_results({}, value)
    if isinstance(value, list | tuple):
        return list(value)
    return value


def merge_results(dest: ResultStore, src: Mapping[str, Any] | None) -> ResultStore:
    """Merge ``src`` into ``dest`` without overwriting values already set in ``dest``.

    Nested mappings are copied into new dicts and sequences into new lists so
    the two stores never share mutable containers.
    """
    if not src:
        return dest
    for key, value in src.items():
        if dest.get(key) is not None or value is None:
            continue
        dest[key] = _copy_value(value)
    return dest
