"""Topic name normalization and merge-mode classification."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, NamedTuple

from pylivetiming._constants import COMPRESSED_SUFFIX


class MergeMode(StrEnum):
    MERGE = "merge"
    REPLACE = "replace"


class TopicRoute(NamedTuple):
    """Where and how an incoming value lands in the store."""

    name: str
    mode: MergeMode


def is_compressed_topic(raw_name: str) -> bool:
    return raw_name.endswith(COMPRESSED_SUFFIX)


def normalize_topic_name(raw_name: str) -> str:
    """Strip the compressed-topic suffix, if present.

    ``"CarData.z"`` and ``"CarData"`` both normalize to ``"CarData"``.
    """
    if is_compressed_topic(raw_name):
        return raw_name[: -len(COMPRESSED_SUFFIX)]
    return raw_name


def classify(raw_name: str, payload: Any) -> TopicRoute:
    """Classify a raw topic name and its payload.

    A ``.z`` topic whose payload is base64 text is decoded and replaces the
    stored value wholesale. Everything else, including a ``.z`` topic that
    already arrives as structured data, is deep-merged under its raw name.
    """
    if is_compressed_topic(raw_name) and isinstance(payload, str):
        return TopicRoute(normalize_topic_name(raw_name), MergeMode.REPLACE)
    return TopicRoute(raw_name, MergeMode.MERGE)
