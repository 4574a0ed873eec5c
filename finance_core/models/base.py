"""
Shared base for persisted documents.

Every stored entity carries an identity, timestamps and a version number.
The version is what makes compare-and-set writes possible: a write that
was prepared against version N is rejected if the stored copy moved on.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class Document(BaseModel):
    """Base class for every persisted entity."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(
        default=0,
        ge=0,
        description="Incremented by storage on every successful write"
    )
