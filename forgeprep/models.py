"""Base for pydantic models exchanged with LLMs as camelCase JSON."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire.

    Unknown keys from model output are ignored rather than rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using camelCase keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
