"""Webhook DTOs using Pydantic v2."""

from pydantic import BaseModel, ConfigDict, Field


class WebhookAck(BaseModel):
    """Acknowledgment returned to the provider once a callback is recorded."""
    model_config = ConfigDict(extra="forbid")

    ok: bool = True
    accepted: int = Field(0, description="Events processed by this delivery")
    duplicates: int = Field(0, description="Events already processed earlier")
    dropped: int = Field(0, description="Items skipped as unparseable or for unknown sessions")
    messages: int = Field(0, description="New inbound messages recorded")
