"""Pydantic DTOs for Sensay API payloads."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sensay_cli.models.entities import (
    EntryError,
    KnowledgeEntry,
    Replica,
    User,
    origin_from_payload,
    parse_status,
)


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class EntryErrorPayload(_ApiModel):
    fingerprint: str | None = None
    message: str | None = None


class KnowledgeEntryPayload(_ApiModel):
    id: int = Field(validation_alias=AliasChoices("id", "knowledgeBaseID"))
    replica_uuid: str | None = Field(default=None, alias="replicaUUID")
    type: str = "text"
    status: str | None = None
    error: EntryErrorPayload | None = None

    def to_entity(self, replica_id: str | None = None) -> KnowledgeEntry:
        raw: dict[str, Any] = self.model_dump(by_alias=True)
        error = None
        if self.error is not None:
            error = EntryError(fingerprint=self.error.fingerprint, message=self.error.message)
        return KnowledgeEntry(
            id=self.id,
            replica_id=self.replica_uuid or replica_id,
            origin=origin_from_payload(self.type, raw),
            status=parse_status(self.status),
            error=error,
        )


class KnowledgeEntryListResponse(_ApiModel):
    success: bool = True
    items: list[KnowledgeEntryPayload] = Field(default_factory=list)
    total: int | None = None


class CreateEntryResponse(_ApiModel):
    success: bool = False
    knowledge_base_id: int | None = Field(default=None, alias="knowledgeBaseID")


class UploadLocationResponse(_ApiModel):
    success: bool = False
    signed_url: str | None = Field(default=None, alias="signedURL")
    knowledge_base_id: int | None = Field(default=None, alias="knowledgeBaseID")


class SuccessResponse(_ApiModel):
    success: bool = False


class UserPayload(_ApiModel):
    id: str
    name: str | None = None
    email: str | None = None

    def to_entity(self) -> User:
        return User(id=self.id, name=self.name, email=self.email)


class ReplicaPayload(_ApiModel):
    uuid: str
    name: str = ""
    slug: str | None = None
    short_description: str | None = Field(default=None, alias="shortDescription")
    greeting: str | None = None
    owner_id: str | None = Field(default=None, alias="ownerID")

    def to_entity(self) -> Replica:
        return Replica(
            uuid=self.uuid,
            name=self.name,
            slug=self.slug,
            short_description=self.short_description,
            greeting=self.greeting,
            owner_id=self.owner_id,
        )


class ReplicaListResponse(_ApiModel):
    success: bool = True
    items: list[ReplicaPayload] = Field(default_factory=list)
    total: int | None = None


class ReplicaCreateResponse(_ApiModel):
    success: bool = False
    uuid: str | None = None


class LlmSettings(_ApiModel):
    model: str = "claude-3-5-haiku-latest"
    memory_mode: str = Field(default="rag-search", alias="memoryMode")
    system_message: str = Field(default="You are a helpful AI assistant.", alias="systemMessage")
    tools: list[str] = Field(default_factory=list)


class ReplicaUpsertRequest(_ApiModel):
    name: str
    short_description: str = Field(alias="shortDescription")
    greeting: str = "Hello! How can I help you today?"
    owner_id: str = Field(alias="ownerID")
    slug: str
    llm: LlmSettings


__all__ = [
    "CreateEntryResponse",
    "KnowledgeEntryListResponse",
    "KnowledgeEntryPayload",
    "LlmSettings",
    "ReplicaCreateResponse",
    "ReplicaListResponse",
    "ReplicaPayload",
    "ReplicaUpsertRequest",
    "SuccessResponse",
    "UploadLocationResponse",
    "UserPayload",
]
