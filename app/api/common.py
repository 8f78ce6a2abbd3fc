"""
Shared response helpers. Front-end payloads are camelCase.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serialized with camelCase keys; accepts either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
