"""
Campaign Service
Lifecycle operations behind the campaign API.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from src.config import Settings
from src.broadcast.application.services.campaign_runner import CampaignRunner
from src.broadcast.domain.entities.campaign import Campaign, CampaignState
from src.broadcast.domain.exceptions import CampaignNotFoundError, InvalidCampaignTransition
from src.broadcast.domain.protocols import CampaignRepository
from src.channels.domain.exceptions import SessionNotFoundError
from src.channels.domain.protocols import ChannelSessionRepository
from src.channels.domain.services.recipients import normalize_recipients
from src.channels.domain.value_objects import OutboundPayload
from src.shared.domain.base_entity import utcnow
from src.shared.exceptions import ValidationError
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class CampaignService:
    def __init__(
        self,
        campaigns: CampaignRepository,
        sessions: ChannelSessionRepository,
        runner: CampaignRunner,
        settings: Settings,
    ) -> None:
        self.campaigns = campaigns
        self.sessions = sessions
        self.runner = runner
        self.default_country_code = settings.DEFAULT_COUNTRY_CODE

    async def get(self, campaign_id: UUID) -> Campaign:
        campaign = await self.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError("Campaign not found", details={"campaign_id": str(campaign_id)})
        return campaign

    async def create_draft(
        self,
        session_id: UUID,
        name: str,
        payload: OutboundPayload,
        recipients: Iterable[str],
    ) -> Campaign:
        """
        Snapshot the recipient list (normalized, de-duplicated, order kept).

        Raises:
            SessionNotFoundError: Unknown channel session
            ValidationError: Invalid or empty recipient list
        """
        session = await self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError("Channel session not found", details={"session_id": str(session_id)})
        try:
            snapshot = normalize_recipients(session.channel_type, recipients, self.default_country_code)
        except ValueError as e:
            raise ValidationError(str(e), details={"field": "recipients"}) from e
        if not snapshot:
            raise ValidationError("A campaign needs at least one recipient", details={"field": "recipients"})

        campaign = Campaign(session_id=session.id, name=name, payload=payload, recipients=snapshot)
        await self.campaigns.add(campaign)
        logger.info(
            "Campaign drafted",
            extra={"campaign_id": str(campaign.id), "session_id": str(session.id), "total_recipients": len(snapshot)},
        )
        return campaign

    async def schedule(self, campaign_id: UUID, at: Optional[datetime] = None) -> Campaign:
        campaign = await self.get(campaign_id)
        campaign.schedule(at)
        await self._save_transition(campaign, CampaignState.DRAFT)
        logger.info(
            "Campaign scheduled",
            extra={"campaign_id": str(campaign.id), "scheduled_at": campaign.scheduled_at.isoformat()},
        )
        return campaign

    async def start(self, campaign_id: UUID) -> Campaign:
        """Schedule for now (if still a draft) and launch in this process."""
        campaign = await self.get(campaign_id)
        if campaign.state == CampaignState.DRAFT:
            campaign = await self.schedule(campaign_id, utcnow())
        elif campaign.state != CampaignState.SCHEDULED:
            raise InvalidCampaignTransition(
                "Only draft or scheduled campaigns can be started",
                details={"campaign_id": str(campaign_id), "state": campaign.state.value},
            )
        self.runner.launch(campaign.id)
        return campaign

    async def cancel(self, campaign_id: UUID) -> Campaign:
        """
        Draft or scheduled → cancelled. Running → cooperative stop; the
        executor ends it ``failed`` with reason ``cancelled``.

        The stop request is stored, so it reaches the run wherever it executes.
        """
        campaign = await self.get(campaign_id)
        if campaign.state == CampaignState.RUNNING:
            if not await self.campaigns.request_cancel(campaign.id):
                raise InvalidCampaignTransition(
                    "Campaign changed concurrently",
                    details={"campaign_id": str(campaign_id), "expected": CampaignState.RUNNING.value},
                )
            campaign.cancel_requested = True
            # a local run stops now, a remote one at its next poll
            self.runner.cancel(campaign.id)
            logger.info("Campaign cancel requested", extra={"campaign_id": str(campaign.id)})
            return campaign

        expected = campaign.state
        campaign.cancel()
        await self._save_transition(campaign, expected)
        logger.info("Campaign cancelled", extra={"campaign_id": str(campaign.id)})
        return campaign

    async def _save_transition(self, campaign: Campaign, expected: CampaignState) -> None:
        if not await self.campaigns.compare_and_set_state(campaign, expected):
            raise InvalidCampaignTransition(
                "Campaign changed concurrently",
                details={"campaign_id": str(campaign.id), "expected": expected.value},
            )
