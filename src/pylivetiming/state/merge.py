"""Structural merge of partial topic updates.

The feed sends sparse diffs keyed by object path. Objects are merged key by
key, arrays sent whole replace the stored array, and arrays patched through
an object with stringified indices (``{"3": {...}}``) are updated element by
element.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Final

from pylivetiming.exceptions import MergeError


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


#: Marker for "no stored value yet" (distinct from a stored JSON ``null``).
MISSING: Final = _Missing()

#: Largest number of ``None`` slots a keyed patch may insert past the end of an
#: array. Indices further out are rejected.
MAX_ARRAY_GAP: Final = 1024

_PRIMITIVES = (str, int, float, bool, type(None))


def is_json_value(value: Any) -> bool:
    """Whether *value* is one of the JSON kinds (shallow check)."""
    return isinstance(value, (dict, list, *_PRIMITIVES))


@dataclass(frozen=True, slots=True)
class SparsePatch:
    """An array update addressed by element index.

    Built once from the wire form ``{"<index>": <sub-update>, ...}``.
    """

    items: tuple[tuple[int, Any], ...]

    @classmethod
    def parse(cls, update: dict[str, Any], *, path: str = "") -> SparsePatch:
        """Validate all keys of a keyed-patch object.

        Raises
        ------
        MergeError
            If a key is negative or not a decimal integer.
        """
        items: list[tuple[int, Any]] = []
        for key, value in update.items():
            items.append((_parse_index(key, path=path), value))
        return cls(items=tuple(items))

    def __iter__(self) -> Iterator[tuple[int, Any]]:
        return iter(self.items)


def _parse_index(key: Any, *, path: str) -> int:
    text = str(key).strip()
    if text.startswith("-") and text[1:].isdigit():
        raise MergeError(f"invalid array index {key!r} at {path or '<root>'}")
    if not text.isdigit() or not text.isascii():
        raise MergeError(f"data type change between stored array and update key {key!r} at {path or '<root>'}")
    return int(text)


def _child_path(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _apply_sparse_patch(target: list[Any], patch: SparsePatch, *, path: str) -> list[Any]:
    limit = len(target) + MAX_ARRAY_GAP
    for index, _ in patch:
        if index > limit:
            raise MergeError(
                f"invalid array index {index} at {path or '<root>'}: more than {MAX_ARRAY_GAP} slots past the end"
            )
    for index, value in patch:
        if index < len(target):
            target[index] = _merge_value(target[index], value, path=_child_path(path, index))
            continue
        if index > len(target):
            target.extend([None] * (index - len(target)))
        target.append(copy.deepcopy(value))
    return target


def _merge_value(existing: Any, update: Any, *, path: str) -> Any:
    if existing is MISSING:
        return copy.deepcopy(update)

    if not is_json_value(existing):
        raise MergeError(f"invalid value type {type(existing).__name__} at {path or '<root>'}")

    if isinstance(existing, dict):
        if not isinstance(update, dict):
            return copy.deepcopy(update)
        for key, value in update.items():
            current = existing.get(key, MISSING)
            existing[key] = _merge_value(current, value, path=_child_path(path, key))
        return existing

    if isinstance(existing, list):
        if isinstance(update, dict):
            return _apply_sparse_patch(existing, SparsePatch.parse(update, path=path), path=path)
        return copy.deepcopy(update)

    return copy.deepcopy(update)


def merge(existing: Any, update: Any) -> Any:
    """Fold *update* into *existing* and return the result.

    Parameters
    ----------
    existing
        Current stored value, or :data:`MISSING` when the topic has not
        been seen yet. Mutated in place when it is a dict or list.
    update
        Incoming partial value. Never mutated; anything taken from it is
        deep-copied.

    Returns
    -------
    Any
        ``existing`` after the fold, or the replacement value when the
        update replaces it wholesale.

    Raises
    ------
    MergeError
        On an invalid array index (negative, or more than
        :data:`MAX_ARRAY_GAP` slots past the end of the array), a named
        key patched onto an array, or a stored value of a non-JSON kind.
    """
    return _merge_value(existing, update, path="")
