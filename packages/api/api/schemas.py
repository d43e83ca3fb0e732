"""Pydantic request/response models for the API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Body for the chat endpoint.

    ``message`` is left untyped so a missing or non-string value can be
    reported with the endpoint's own 400 error.
    """

    message: Any = None
    stream: bool = True


class ChatResponse(BaseModel):
    """Non-streaming reply from the chat endpoint."""

    response: str


class NoteRequest(BaseModel):
    """Body for the leave-a-note endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    name: Any = None
    email: Any = None
    message: Any = None
    contact_info: str | None = Field(default=None, alias="contactInfo")


class NoteResponse(BaseModel):
    """Acknowledgement for a saved note."""

    success: bool = True
    message: str = "Note submitted successfully"
    note_id: str = Field(serialization_alias="noteId")


class NoteRecord(BaseModel):
    """A stored note as returned by the admin listing."""

    id: str
    name: str
    email: str
    message: str
    contact_info: str | None = Field(default="", serialization_alias="contactInfo")
    ip_address: str = Field(default="unknown", serialization_alias="ipAddress")
    created_at: str | None = Field(default=None, serialization_alias="createdAt")


class HealthStatus(BaseModel):
    """Liveness probe payload."""

    status: str = "OK"
    timestamp: str
    service: str
