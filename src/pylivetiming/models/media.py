"""Team radio and media stream topic models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from pylivetiming.models._base import LiveTimingBaseModel, keyed_items


class RadioCapture(LiveTimingBaseModel):
    utc: str | None = None
    racing_number: str | None = None
    path: str | None = None


class TeamRadio(LiveTimingBaseModel):
    """``TeamRadio`` topic."""

    captures: list[RadioCapture] = Field(default_factory=list)

    @field_validator("captures", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[Any]:
        return keyed_items(value)

    @property
    def latest(self) -> RadioCapture | None:
        return self.captures[-1] if self.captures else None


class Stream(LiveTimingBaseModel):
    type: str | None = None
    name: str | None = None
    language: str | None = None
    uri: str | None = None
    path: str | None = None
    utc: str | None = None


class AudioStreams(LiveTimingBaseModel):
    """``AudioStreams`` topic."""

    streams: list[Stream] = Field(default_factory=list)

    @field_validator("streams", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[Any]:
        return keyed_items(value)


class ContentStreams(AudioStreams):
    """``ContentStreams`` topic (same shape as ``AudioStreams``)."""
