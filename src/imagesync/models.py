"""
Data models exchanged with the lifecycle host.

The host owns and persists these records; imagesync only builds and refreshes
them from live registry reads.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .reference import extract_digest, is_digest, parse_destination, parse_reference


class SyncRecord(BaseModel):
    """
    State of one mirrored image.

    ``id`` is the canonical identity of the destination
    (``<registry>/<repository>@<digest>``); it is empty once the destination
    is gone.
    """
    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Tag- or digest-qualified source reference")
    destination: str = Field(..., description="Tag-qualified destination reference")
    source_digest: str = Field(default="", description="Source digest at the last sync")
    id: str = Field(default="", description="Canonical identity of the destination")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        parse_reference(v)
        return v

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        parse_destination(v)
        return v

    @field_validator("source_digest")
    @classmethod
    def validate_source_digest(cls, v: str) -> str:
        if v and not is_digest(v):
            raise ValueError(f"source_digest must be an algorithm:hash digest, got '{v}'")
        return v

    @computed_field
    @property
    def digest(self) -> str:
        """Digest part of the identity."""
        return extract_digest(self.id)

    @property
    def exists(self) -> bool:
        return bool(self.id)


__all__ = ["SyncRecord"]
