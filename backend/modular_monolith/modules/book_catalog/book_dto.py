from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class BookDto(BaseModel):
    """Read model for a catalogue entry. Identity is the id alone."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    title: str
    author: str
