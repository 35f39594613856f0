"""Typed JSON columns.

Nested values (team composition, deliverable lists) are stored as JSON but are
always handed to and returned from the ORM as typed Python values.
"""
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy import JSON
from sqlalchemy.types import TypeDecorator


class TeamComposition(BaseModel):
    """Who fills each delivery role. Unknown roles are kept as extra fields."""

    model_config = ConfigDict(extra="allow")

    product_manager: Optional[Union[str, list[str]]] = None
    product_designer: Optional[Union[str, list[str]]] = None
    engineering_manager: Optional[str] = None
    engineers: list[str] = []
    qa_engineers: list[str] = []
    marketing_manager: Optional[str] = None
    sales_support: list[str] = []

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude_defaults=True)


class TeamCompositionType(TypeDecorator):
    """Stores a TeamComposition as a JSON object."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return {}
        if isinstance(value, dict):
            value = TeamComposition.model_validate(value)
        return value.to_json()

    def process_result_value(self, value, dialect):
        return TeamComposition.model_validate(value or {})


class StringList(TypeDecorator):
    """Stores a list of strings as a JSON array; NULL reads back as []."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return [str(item) for item in (value or [])]

    def process_result_value(self, value, dialect):
        return list(value or [])
