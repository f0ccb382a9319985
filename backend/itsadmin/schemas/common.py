from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for platform payloads: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def none_as_empty(value: Any) -> Any:
    """The platform sends ``null`` for empty lists on some endpoints."""
    return [] if value is None else value
