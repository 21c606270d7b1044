"""In-memory reconciliation store.

This is the only component allowed to mutate mirrored topic state.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pylivetiming._codec import decode_topic_payload
from pylivetiming.state.events import UpdateEvent
from pylivetiming.state.merge import MISSING, merge
from pylivetiming.state.topics import MergeMode, TopicRoute, classify, normalize_topic_name

_logger = logging.getLogger(__name__)


def _resolve(route: TopicRoute, raw_value: Any) -> Any:
    """Turn a raw snapshot/update value into the value stored for *route*."""
    if route.mode is MergeMode.REPLACE:
        return decode_topic_payload(raw_value)
    return copy.deepcopy(raw_value)


class ReconciliationStore:
    """Mirror of the remote topic state, keyed by normalized topic name.

    Every read hands out copies, so observers can never see (or cause) a
    half-merged value. A single re-entrant lock serializes all access for
    hosts that dispatch transport callbacks from worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state: dict[str, Any] = {}
        self._stale: set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._state)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return self._lookup(name) in self._state

    def _lookup(self, name: str) -> str:
        # A '.z' topic that arrived as structured data is stored under its raw
        # name; the decoded entry under the normalized name wins when both exist.
        normalized = normalize_topic_name(name)
        if normalized in self._state or name not in self._state:
            return normalized
        return name

    def __iter__(self) -> Iterator[str]:
        return iter(self.topics)

    @property
    def topics(self) -> tuple[str, ...]:
        """Normalized names of every topic seen so far."""
        with self._lock:
            return tuple(self._state)

    @property
    def stale_topics(self) -> frozenset[str]:
        """Topics carried over a disconnect and not refreshed since."""
        with self._lock:
            return frozenset(self._stale)

    def is_stale(self, name: str) -> bool:
        with self._lock:
            return self._lookup(name) in self._stale

    def seed(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        """Load a subscription snapshot.

        Snapshot values are authoritative: they replace whatever is stored
        instead of being merged. All entries are decoded before any of them
        is committed, so a :class:`DecodeError` leaves the store untouched.

        Returns
        -------
        dict
            Normalized topic name -> seeded value (copies).
        """
        prepared: dict[str, Any] = {}
        for raw_name, raw_value in snapshot.items():
            route = classify(raw_name, raw_value)
            prepared[route.name] = _resolve(route, raw_value)

        with self._lock:
            self._state.update(prepared)
            self._stale.difference_update(prepared)
            _logger.debug("Seeded %d topics: %s", len(prepared), ", ".join(prepared))
            return copy.deepcopy(prepared)

    def apply(self, event: UpdateEvent) -> tuple[str, Any]:
        """Fold a feed update into the stored value of its topic.

        ``REPLACE`` topics are decoded and replace the stored value; all
        other topics are deep-merged. The merge runs against a working copy
        that is committed only once it succeeds, so a failing update leaves
        the previous value in place.

        Raises
        ------
        DecodeError
            The compressed payload could not be decoded.
        MergeError
            The update could not be merged into the stored value.
        """
        route = classify(event.topic, event.payload)

        with self._lock:
            if route.mode is MergeMode.REPLACE:
                value = _resolve(route, event.payload)
            else:
                current = self._state.get(route.name, MISSING)
                working = current if current is MISSING else copy.deepcopy(current)
                value = merge(working, event.payload)

            self._state[route.name] = value
            self._stale.discard(route.name)
            return route.name, copy.deepcopy(value)

    def get(self, name: str, default: Any = None) -> Any:
        """Copy of the current value of *name* (raw or normalized spelling).

        For a ``.z`` topic stored both decoded and as structured data, the
        decoded entry under the normalized name is returned.
        """
        with self._lock:
            value = self._state.get(self._lookup(name), MISSING)
            if value is MISSING:
                return default
            return copy.deepcopy(value)

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only copy of the whole state."""
        with self._lock:
            return MappingProxyType(copy.deepcopy(self._state))

    def mark_stale(self) -> None:
        """Flag every stored topic as stale; values are kept as they are."""
        with self._lock:
            self._stale = set(self._state)

    def clear(self) -> None:
        with self._lock:
            self._state.clear()
            self._stale.clear()
