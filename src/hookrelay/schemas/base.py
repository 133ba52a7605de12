# src/hookrelay/schemas/base.py
"""Shared Pydantic base for camelCase wire payloads."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable model serialised with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def wire(self) -> dict[str, Any]:
        """Return the JSON-ready payload sent to browser clients."""
        return self.model_dump(by_alias=True, mode="json")
