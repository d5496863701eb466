"""
Base schema model for report payloads.

Provides camelCase field aliases for the dashboard frontend, consistent
datetime serialization with a UTC indicator, and attribute-based construction
so ORM rows and record snapshots validate the same way.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer


def to_camel(string: str) -> str:
    """
    Convert snake_case to camelCase.

    Example:
        >>> to_camel("resolution_rate")
        'resolutionRate'
    """
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


def serialize_datetime(dt: datetime | None) -> str | None:
    """
    Serialize a datetime to ISO 8601 with a 'Z' suffix.

    Aware values are converted to UTC first. Naive values are assumed to
    already be UTC, which is how the record store keeps them.
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)

    return dt.isoformat() + "Z"


class HTTPSchemaModel(BaseModel):
    """
    Base model for report schemas.

    - camelCase aliases on output, snake_case or camelCase accepted on input
    - from_attributes=True so snapshots can be built from ORM rows
    - datetimes serialized as UTC with a 'Z' suffix
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*", mode="wrap")
    @classmethod
    def serialize_any_datetime(cls, value: Any, handler: Any) -> Any:
        """Serialize datetime fields with the UTC indicator."""
        if isinstance(value, datetime):
            return serialize_datetime(value)
        return handler(value)
