"""Convention-related schemas for remote payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RemoteModel(BaseModel):
    """Base for payloads exchanged with the AgentTeams API (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Convention(RemoteModel):
    """Convention document as returned by the list and detail endpoints."""

    id: str
    title: str | None = None
    category: str | None = None
    file_name: str | None = None
    content: str | None = None
    trigger: str | None = None
    description: str | None = None
    agent_instruction: str | None = None
    updated_at: str | None = None
    created_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        return str(v) if isinstance(v, int) else v

    @field_validator("category", "title", mode="before")
    @classmethod
    def drop_non_strings(cls, v: object) -> object:
        return v if isinstance(v, str) else None


class PlatformGuide(RemoteModel):
    """Shared read-only guide; identified locally only by its file name."""

    title: str | None = None
    file_name: str | None = None
    category: str | None = None
    content: str | None = None


class AgentConfigSummary(RemoteModel):
    """Registered agent profile; only the id is needed to find its template."""

    id: str
    name: str | None = None


class PageMeta(RemoteModel):
    """Pagination metadata of list responses."""

    total_pages: int | None = None
    page: int | None = None
    page_size: int | None = None


class ConventionCreate(RemoteModel):
    """Request to create a new convention."""

    title: str = Field(min_length=1)
    category: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    content: str
    trigger: str | None = None
    description: str | None = None
    agent_instruction: str | None = None


class ConventionUpdate(RemoteModel):
    """Request to replace a convention body, guarded by its revision token.

    Metadata fields left unset are omitted from the request; fields set to
    ``None`` are sent as explicit ``null`` to clear them server-side.
    """

    updated_at: str = Field(min_length=1)
    content: str
    trigger: str | None = None
    description: str | None = None
    agent_instruction: str | None = None
