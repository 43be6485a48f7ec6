"""
Webhook Ingestion Service
Verifies, de-duplicates and routes inbound provider callbacks.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.channels.application.services.session_service import ChannelSessionService
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import SessionNotFoundError, SignatureVerificationFailed
from src.channels.domain.value_objects import (
    ChannelType,
    InboundEvent,
    NewMessage,
    ParseError,
    RawWebhookRequest,
    SessionStatusChange,
    StatusUpdate,
)
from src.channels.infrastructure.adapters.registry import AdapterRegistry
from src.messaging.application.services.conversation_ledger import ConversationLedger
from src.messaging.application.services.delivery_tracker import DeliveryStateTracker
from src.messaging.domain.entities.idempotency_record import ClaimOutcome
from src.messaging.domain.entities.message import Message
from src.messaging.domain.events import IncomingMessage
from src.messaging.domain.exceptions import EventInProgress, InvalidWebhookPayload, WebhookVerificationFailed
from src.messaging.domain.protocols import IdempotencyStore
from src.shared.infrastructure.messaging.event_bus import EventBroker
from src.shared.infrastructure.observability.logger import get_logger, log_security_event
from src.shared.security import verify_shared_secret

logger = get_logger(__name__)


@dataclass
class ReceivedMessage:
    """A newly recorded inbound message, handed to auto-reply after acknowledgment."""

    session: ChannelSession
    message: Message


@dataclass
class IngestionReport:
    accepted: int = 0
    duplicates: int = 0
    dropped: int = 0
    received: List[ReceivedMessage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "duplicates": self.duplicates,
            "dropped": self.dropped,
            "messages": len(self.received),
        }


class WebhookIngestionService:
    """
    One callback in, canonical events out.

    Order matters: the signature is checked before the body is parsed and
    before the idempotency store or ledger is touched. Each event is claimed
    before any side effect, marked processed after its handler succeeds and
    released when the handler raises, so the provider's redelivery is
    processed again.
    """

    def __init__(
        self,
        adapters: AdapterRegistry,
        sessions: ChannelSessionService,
        idempotency: IdempotencyStore,
        ledger: ConversationLedger,
        tracker: DeliveryStateTracker,
        broker: EventBroker,
        verify_token: Optional[str] = None,
    ) -> None:
        self.adapters = adapters
        self.sessions = sessions
        self.idempotency = idempotency
        self.ledger = ledger
        self.tracker = tracker
        self.broker = broker
        self.verify_token = verify_token

    def verify_subscription(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> str:
        """Meta ``GET`` handshake: echo the challenge when mode and token match."""
        if mode == "subscribe" and challenge is not None and verify_shared_secret(self.verify_token, token):
            logger.info("Webhook subscription verified")
            return challenge
        log_security_event("webhook_handshake_rejected", channel_type="meta", details={"mode": mode})
        raise WebhookVerificationFailed("Webhook verification failed")

    async def ingest(
        self,
        channel_type: ChannelType,
        request: RawWebhookRequest,
        external_id: Optional[str] = None,
    ) -> IngestionReport:
        """
        Process one callback.

        Args:
            channel_type: Selects the adapter
            request: Raw body and headers
            external_id: Session external id from the URL for per-session endpoints;
                None for shared endpoints (Meta) where each event names its account

        Raises:
            SessionNotFoundError: ``external_id`` names no session
            SignatureVerificationFailed: Authenticity check failed
            InvalidWebhookPayload: Body is not JSON
            EventInProgress: Another worker holds a fresh claim on one of the events
        """
        adapter = self.adapters.get(channel_type)

        session: Optional[ChannelSession] = None
        if external_id is not None:
            session = await self.sessions.resolve(channel_type, external_id)
            if session is None:
                raise SessionNotFoundError(
                    "Channel session not found",
                    details={"channel_type": ChannelType(channel_type).value, "external_id": external_id},
                )

        if not adapter.verify_signature(request, adapter.webhook_secret(session)):
            log_security_event(
                "webhook_signature_rejected",
                channel_type=ChannelType(channel_type).value,
                session_id=str(session.id) if session else None,
            )
            raise SignatureVerificationFailed("Webhook signature verification failed")

        try:
            payload = json.loads(request.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidWebhookPayload("Webhook body is not valid JSON") from e

        report = IngestionReport()
        for item in adapter.safe_normalize(payload):
            if isinstance(item, ParseError):
                report.dropped += 1
                logger.info(
                    "Dropped webhook item",
                    extra={"reason": item.reason, "detail": item.detail, "channel_type": channel_type},
                )
                continue

            target = session or await self.sessions.resolve(item.channel_type, item.session_external_id)
            if target is None:
                report.dropped += 1
                logger.warning(
                    "Webhook event for unknown session",
                    extra={"channel_type": item.channel_type.value, "external_id": item.session_external_id},
                )
                continue

            await self._process(target, item, report)

        logger.info("Webhook ingested", extra={"channel_type": ChannelType(channel_type).value, **report.to_dict()})
        return report

    async def _process(self, session: ChannelSession, item: InboundEvent, report: IngestionReport) -> None:
        provider = item.channel_type.value
        # Event ids are only unique per provider account
        event_id = f"{session.external_id}:{item.event_id}"

        outcome = await self.idempotency.claim(provider, event_id)
        if outcome == ClaimOutcome.DUPLICATE:
            report.duplicates += 1
            logger.debug("Duplicate webhook event", extra={"provider": provider, "event_id": event_id})
            return
        if outcome == ClaimOutcome.IN_PROGRESS:
            raise EventInProgress(
                "Webhook event is being processed", details={"provider": provider, "event_id": event_id}
            )

        try:
            await self._route(session, item, report)
        except Exception:
            await self.idempotency.release(provider, event_id)
            logger.exception("Webhook event handler failed", extra={"provider": provider, "event_id": event_id})
            raise
        await self.idempotency.complete(provider, event_id)
        report.accepted += 1

    async def _route(self, session: ChannelSession, item: InboundEvent, report: IngestionReport) -> None:
        if isinstance(item, StatusUpdate):
            await self.tracker.apply_status(
                session.id,
                item.provider_message_id,
                item.status,
                occurred_at=item.occurred_at,
                error=item.error,
            )
        elif isinstance(item, NewMessage):
            await self._receive(session, item, report)
        elif isinstance(item, SessionStatusChange):
            await self.sessions.apply_status(session, item.status, item.phone_number)

    async def _receive(self, session: ChannelSession, item: NewMessage, report: IngestionReport) -> None:
        entry = await self.ledger.record(Message.incoming(session_id=session.id, event=item), item.customer_name)
        if not entry.created:
            return
        message = entry.message
        self.broker.publish(
            IncomingMessage(
                session_id=session.id,
                message_id=message.id,
                conversation_id=message.conversation_id,
                customer_id=message.customer_id,
                content_type=message.content_type.value,
                preview=entry.conversation.last_message_preview or message.preview,
            )
        )
        report.received.append(ReceivedMessage(session=session, message=message))
