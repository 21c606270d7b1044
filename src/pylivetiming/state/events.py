"""Inbound feed events and outbound observer notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UpdateEvent(BaseModel):
    """A single ``feed`` invocation as delivered by the hub."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., description="Raw topic name, including any '.z' suffix")
    payload: Any = Field(default=None, description="Raw payload (as received)")
    timestamp: str = Field(default="", description="ISO-8601 timestamp sent with the update")

    @field_validator("topic")
    @classmethod
    def _require_topic(cls, value: str) -> str:
        topic = value.strip()
        if not topic:
            raise ValueError("topic must be non-empty")
        return topic

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)


@dataclass(frozen=True, slots=True)
class FeedUpdate:
    """What observers receive after an update has been applied.

    ``name``/``value`` are the normalized topic and its full reconciled
    value (a copy). ``topic``/``payload`` are the un-normalized wire form.
    """

    name: str
    value: Any
    timestamp: str
    topic: str
    payload: Any
