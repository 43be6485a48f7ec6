"""
Campaign API Schemas
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.broadcast.domain.entities.campaign import Campaign
from src.channels.domain.value_objects import ContentType, OutboundPayload


class PayloadSchema(BaseModel):
    """Text, or a media reference with an optional caption in ``text``."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    content_type: ContentType = ContentType.TEXT
    text: Optional[str] = Field(None, max_length=4096)
    media_url: Optional[str] = Field(None, max_length=2048)
    filename: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def check_payload(self):
        # OutboundPayload raises ValueError on an incomplete payload
        self.to_payload()
        return self

    def to_payload(self) -> OutboundPayload:
        return OutboundPayload(
            content_type=self.content_type,
            text=self.text,
            media_url=self.media_url,
            filename=self.filename,
        )

    @classmethod
    def from_payload(cls, payload: OutboundPayload) -> "PayloadSchema":
        return cls(
            content_type=payload.content_type,
            text=payload.text,
            media_url=payload.media_url,
            filename=payload.filename,
        )


class CreateCampaignRequest(BaseModel):
    """Create campaign request schema"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    session_id: UUID = Field(..., description="Channel session to send through")
    name: str = Field(..., min_length=1, max_length=255)
    payload: PayloadSchema
    recipients: List[str] = Field(..., min_length=1, max_length=100_000)


class ScheduleCampaignRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scheduled_at: Optional[datetime] = Field(None, description="Defaults to now; naive values are UTC")

    @field_validator("scheduled_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CampaignResponse(BaseModel):
    """Campaign response schema"""

    id: UUID
    session_id: UUID
    name: str
    state: str
    payload: PayloadSchema
    total_recipients: int
    sent_count: int
    failed_count: int
    progress_percent: float
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, campaign: Campaign) -> "CampaignResponse":
        return cls(
            id=campaign.id,
            session_id=campaign.session_id,
            name=campaign.name,
            state=campaign.state.value,
            payload=PayloadSchema.from_payload(campaign.payload),
            total_recipients=campaign.total_recipients,
            sent_count=campaign.sent_count,
            failed_count=campaign.failed_count,
            progress_percent=campaign.progress_percent,
            scheduled_at=campaign.scheduled_at,
            started_at=campaign.started_at,
            completed_at=campaign.completed_at,
            failure_reason=campaign.failure_reason,
            cancel_requested=campaign.cancel_requested,
            created_at=campaign.created_at,
            updated_at=campaign.updated_at,
        )
