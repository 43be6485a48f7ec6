"""Webhook API routes."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from src.autoreply.application.services.auto_reply_engine import AutoReplyEngine
from src.channels.domain.value_objects import ChannelType, RawWebhookRequest
from src.dependencies import get_auto_reply_engine, get_webhook_service
from src.messaging.api.schemas.webhook_dto import WebhookAck
from src.messaging.application.services.webhook_service import IngestionReport, WebhookIngestionService

router = APIRouter(
    prefix="/webhooks",
    tags=["webhooks"],
    include_in_schema=False  # Hide webhook endpoints from public API docs
)


async def _raw(request: Request) -> RawWebhookRequest:
    return RawWebhookRequest(
        body=await request.body(),
        headers=dict(request.headers),
        query=dict(request.query_params),
    )


def _acknowledge(report: IngestionReport, background: BackgroundTasks, engine: AutoReplyEngine) -> WebhookAck:
    # Auto-replies run after the provider has its 200
    if report.received:
        background.add_task(engine.handle_many, list(report.received))
    return WebhookAck(ok=True, **report.to_dict())


@router.post("/whatsapp/{external_id}", response_model=WebhookAck)
async def whatsapp_webhook(
    external_id: str,
    request: Request,
    background: BackgroundTasks,
    service: WebhookIngestionService = Depends(get_webhook_service),
    engine: AutoReplyEngine = Depends(get_auto_reply_engine),
):
    """WhatsApp gateway callbacks for one session."""
    report = await service.ingest(ChannelType.WHATSAPP, await _raw(request), external_id)
    return _acknowledge(report, background, engine)


@router.post("/telegram/{external_id}", response_model=WebhookAck)
async def telegram_webhook(
    external_id: str,
    request: Request,
    background: BackgroundTasks,
    service: WebhookIngestionService = Depends(get_webhook_service),
    engine: AutoReplyEngine = Depends(get_auto_reply_engine),
):
    """Telegram Bot API updates for one bot session."""
    report = await service.ingest(ChannelType.TELEGRAM, await _raw(request), external_id)
    return _acknowledge(report, background, engine)


@router.get("/meta", response_class=PlainTextResponse)
async def verify_meta_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    service: WebhookIngestionService = Depends(get_webhook_service),
):
    """
    Meta webhook verification endpoint.

    Called by Meta during subscription setup; must echo the challenge.
    """
    return PlainTextResponse(service.verify_subscription(hub_mode, hub_verify_token, hub_challenge))


@router.post("/meta", response_model=WebhookAck)
async def meta_webhook(
    request: Request,
    background: BackgroundTasks,
    service: WebhookIngestionService = Depends(get_webhook_service),
    engine: AutoReplyEngine = Depends(get_auto_reply_engine),
):
    """Messenger and Instagram callbacks; each entry names its page or account."""
    report = await service.ingest(ChannelType.MESSENGER, await _raw(request))
    return _acknowledge(report, background, engine)
