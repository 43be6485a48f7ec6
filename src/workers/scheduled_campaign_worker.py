"""Launches scheduled campaigns once their time has come."""

from src.broadcast.application.services.campaign_runner import CampaignRunner
from src.broadcast.domain.protocols import CampaignRepository
from src.shared.domain.base_entity import utcnow
from src.workers.base_worker import BaseWorker, logger


class ScheduledCampaignWorker(BaseWorker):
    def __init__(self, campaigns: CampaignRepository, runner: CampaignRunner, interval: float = 15, batch_size: int = 50):
        super().__init__("scheduled_campaigns", interval=interval)
        self.campaigns = campaigns
        self.runner = runner
        self.batch_size = batch_size

    async def execute(self) -> bool:
        due = await self.campaigns.list_due(utcnow(), limit=self.batch_size)
        launched = 0
        for campaign in due:
            if self.runner.is_running(campaign.id):
                continue
            self.runner.launch(campaign.id)
            launched += 1
        if launched:
            logger.info("Launched scheduled campaigns", worker=self.worker_name, count=launched)
        return True
