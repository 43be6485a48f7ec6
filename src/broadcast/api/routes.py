"""
Campaign Routes
"""
from __future__ import annotations

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from src.broadcast.api.schemas import CampaignResponse, CreateCampaignRequest, ScheduleCampaignRequest
from src.broadcast.application.services.campaign_service import CampaignService
from src.dependencies import get_campaign_service

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])

Service = Annotated[CampaignService, Depends(get_campaign_service)]


@router.post(
    "",
    response_model=CampaignResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Campaign",
    description="Create a draft campaign with a snapshot of its recipients",
)
async def create_campaign(body: CreateCampaignRequest, service: Service) -> CampaignResponse:
    campaign = await service.create_draft(
        session_id=body.session_id,
        name=body.name,
        payload=body.payload.to_payload(),
        recipients=body.recipients,
    )
    return CampaignResponse.from_entity(campaign)


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(campaign_id: UUID, service: Service) -> CampaignResponse:
    return CampaignResponse.from_entity(await service.get(campaign_id))


@router.post("/{campaign_id}/schedule", response_model=CampaignResponse)
async def schedule_campaign(
    campaign_id: UUID,
    service: Service,
    body: Optional[ScheduleCampaignRequest] = Body(None),
) -> CampaignResponse:
    at = body.scheduled_at if body else None
    return CampaignResponse.from_entity(await service.schedule(campaign_id, at))


@router.post("/{campaign_id}/start", response_model=CampaignResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_campaign(campaign_id: UUID, service: Service) -> CampaignResponse:
    """Launch now; progress is streamed on ``/ws/events/campaign/{id}``."""
    return CampaignResponse.from_entity(await service.start(campaign_id))


@router.post("/{campaign_id}/cancel", response_model=CampaignResponse)
async def cancel_campaign(campaign_id: UUID, service: Service) -> CampaignResponse:
    return CampaignResponse.from_entity(await service.cancel(campaign_id))
