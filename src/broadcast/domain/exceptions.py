"""Broadcast domain exceptions."""

from src.shared.exceptions import ConflictError, DomainError, NotFoundError


class CampaignNotFoundError(NotFoundError):
    code = "campaign_not_found"


class InvalidCampaignTransition(ConflictError):
    code = "invalid_campaign_transition"


class CampaignCounterOverflow(DomainError):
    """sent_count + failed_count would exceed total_recipients."""

    code = "campaign_counter_overflow"
    status_code = 500
