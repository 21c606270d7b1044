"""Base model for live timing topic values.

Every topic model inherits from :class:`LiveTimingBaseModel` which
provides:

* ``alias_generator=to_pascal`` so PascalCase feed keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops empty-string values so
  the field default is used.
* A ``raw`` dict that captures the original topic value.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_pascal


def keyed_items(value: Any) -> list[Any]:
    """Items of a list, or of a keyed-patch object in index order.

    Topic arrays that were only ever delivered as keyed patches (for example
    when the first update for a topic arrives before any snapshot) are still
    objects keyed by ``"0"``, ``"1"``, ...; models read both forms.
    """
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        numeric = [key for key in value if str(key).isdigit()]
        return [value[key] for key in sorted(numeric, key=lambda k: int(k))]
    return []


class LiveTimingBaseModel(BaseModel):
    """Base for live timing topic models (read-only views of store values)."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_pascal,
    )

    raw: dict[str, Any] = Field(default_factory=dict, alias="raw")
    """Original topic value."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Drop empty strings and stash the raw value."""
        if not isinstance(values, dict):
            return values
        cleaned = {k: v for k, v in values.items() if not (isinstance(v, str) and not v.strip())}
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
