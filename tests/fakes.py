"""In-memory repositories and scripted adapters for service-level tests."""

from __future__ import annotations

import copy
import itertools
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

import httpx

from src.autoreply.application.services.auto_reply_engine import AutoReplyEngine
from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule
from src.broadcast.application.services.campaign_executor import CampaignExecutor
from src.broadcast.application.services.campaign_runner import CampaignRunner
from src.broadcast.application.services.campaign_service import CampaignService
from src.broadcast.domain.entities.campaign import Campaign, CampaignState
from src.broadcast.domain.exceptions import CampaignNotFoundError
from src.channels.application.services.session_service import ChannelSessionService
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.value_objects import (
    ChannelType,
    DispatchResult,
    OutboundPayload,
    RawWebhookRequest,
    SessionStatus,
)
from src.channels.infrastructure.adapters.registry import AdapterRegistry
from src.channels.infrastructure.adapters.whatsapp_gateway import GATEWAY_KEY_HEADER, WhatsAppGatewayAdapter
from src.channels.infrastructure.rate_limiter import ThrottleGateRegistry
from src.config import Settings
from src.messaging.application.services.conversation_ledger import ConversationLedger
from src.messaging.application.services.delivery_tracker import DeliveryStateTracker
from src.messaging.application.services.dispatch_service import MessageDispatcher
from src.messaging.application.services.webhook_service import WebhookIngestionService
from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.idempotency_record import ClaimOutcome, IdempotencyState
from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import DuplicateConversationError, DuplicateMessageError
from src.messaging.domain.value_objects import MessageDirection, MessageStatus
from src.shared.domain.base_entity import utcnow
from src.shared.infrastructure.messaging.event_bus import EventBroker, Subscription

WEBHOOK_KEY = "hook-key"


# ───────────────────────────── repositories ─────────────────────────────

class InMemoryChannelSessionRepository:
    def __init__(self) -> None:
        self.items: Dict[UUID, ChannelSession] = {}

    async def get(self, session_id: UUID) -> Optional[ChannelSession]:
        item = self.items.get(session_id)
        return copy.deepcopy(item) if item else None

    async def get_by_external_id(self, channel_type: ChannelType, external_id: str) -> Optional[ChannelSession]:
        for item in self.items.values():
            if item.channel_type == channel_type and item.external_id == external_id:
                return copy.deepcopy(item)
        return None

    async def add(self, session: ChannelSession) -> ChannelSession:
        self.items[session.id] = copy.deepcopy(session)
        return session

    async def update(self, session: ChannelSession) -> ChannelSession:
        self.items[session.id] = copy.deepcopy(session)
        return session


class InMemoryMessageRepository:
    def __init__(self, conversations: Optional["InMemoryConversationRepository"] = None) -> None:
        self.items: Dict[UUID, Message] = {}
        self.reads = 0
        self.conversations = conversations
        # raised by the next add_to_conversation before anything is written
        self.fail_next_write: Optional[Exception] = None

    async def add(self, message: Message) -> Message:
        self._check_duplicate(message)
        self.items[message.id] = copy.deepcopy(message)
        return message

    async def add_to_conversation(self, message: Message, conversation: Conversation) -> Message:
        if self.fail_next_write is not None:
            error, self.fail_next_write = self.fail_next_write, None
            raise error
        self._check_duplicate(message)
        self.items[message.id] = copy.deepcopy(message)
        if self.conversations is not None:
            self.conversations.items[conversation.id] = copy.deepcopy(conversation)
        return message

    def _check_duplicate(self, message: Message) -> None:
        if message.provider_message_id:
            for item in self.items.values():
                if item.session_id == message.session_id and item.provider_message_id == message.provider_message_id:
                    raise DuplicateMessageError("Message already recorded")

    async def get(self, message_id: UUID) -> Optional[Message]:
        self.reads += 1
        item = self.items.get(message_id)
        return copy.deepcopy(item) if item else None

    async def get_by_provider_id(self, session_id: UUID, provider_message_id: str) -> Optional[Message]:
        self.reads += 1
        for item in self.items.values():
            if item.session_id == session_id and item.provider_message_id == provider_message_id:
                return copy.deepcopy(item)
        return None

    async def compare_and_set(self, message: Message, expected_status: MessageStatus) -> bool:
        stored = self.items.get(message.id)
        if stored is None or stored.status != expected_status:
            return False
        self.items[message.id] = copy.deepcopy(message)
        return True

    async def list_for_conversation(self, conversation_id: UUID, limit: int = 100, offset: int = 0) -> List[Message]:
        rows = sorted(
            (m for m in self.items.values() if m.conversation_id == conversation_id),
            key=lambda m: m.created_at,
        )
        return [copy.deepcopy(m) for m in rows[offset:offset + limit]]

    async def has_incoming_before(self, message: Message) -> bool:
        return any(
            m.session_id == message.session_id
            and m.customer_id == message.customer_id
            and m.direction == MessageDirection.INCOMING
            and (m.created_at, str(m.id)) < (message.created_at, str(message.id))
            for m in self.items.values()
        )

    def by_direction(self, direction: MessageDirection) -> List[Message]:
        return [m for m in self.items.values() if m.direction == direction]


class InMemoryConversationRepository:
    def __init__(self) -> None:
        self.items: Dict[UUID, Conversation] = {}

    async def get(self, conversation_id: UUID) -> Optional[Conversation]:
        item = self.items.get(conversation_id)
        return copy.deepcopy(item) if item else None

    async def get_by_customer(self, session_id: UUID, customer_id: str) -> Optional[Conversation]:
        for item in self.items.values():
            if item.session_id == session_id and item.customer_id == customer_id:
                return copy.deepcopy(item)
        return None

    async def add(self, conversation: Conversation) -> Conversation:
        for item in self.items.values():
            if item.session_id == conversation.session_id and item.customer_id == conversation.customer_id:
                raise DuplicateConversationError("Conversation exists")
        self.items[conversation.id] = copy.deepcopy(conversation)
        return conversation

    async def update(self, conversation: Conversation) -> Conversation:
        self.items[conversation.id] = copy.deepcopy(conversation)
        return conversation

    async def list_for_session(
        self,
        session_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Conversation]:
        rows = [
            c for c in self.items.values()
            if c.session_id == session_id and (c.unread or not unread_only)
        ]
        rows.sort(key=lambda c: (c.last_message_at is None, -(c.last_message_at.timestamp() if c.last_message_at else 0)))
        return [copy.deepcopy(c) for c in rows[offset:offset + limit]]


class InMemoryIdempotencyStore:
    """Counts every call so tests can assert the store was never touched."""

    def __init__(self) -> None:
        self.records: Dict[Tuple[str, str], IdempotencyState] = {}
        self.calls: List[Tuple[str, str, str]] = []

    async def claim(self, provider: str, event_id: str) -> ClaimOutcome:
        self.calls.append(("claim", provider, event_id))
        state = self.records.get((provider, event_id))
        if state == IdempotencyState.PROCESSED:
            return ClaimOutcome.DUPLICATE
        if state == IdempotencyState.PROCESSING:
            return ClaimOutcome.IN_PROGRESS
        self.records[(provider, event_id)] = IdempotencyState.PROCESSING
        return ClaimOutcome.CLAIMED

    async def complete(self, provider: str, event_id: str) -> None:
        self.calls.append(("complete", provider, event_id))
        self.records[(provider, event_id)] = IdempotencyState.PROCESSED

    async def release(self, provider: str, event_id: str) -> None:
        self.calls.append(("release", provider, event_id))
        if self.records.get((provider, event_id)) == IdempotencyState.PROCESSING:
            del self.records[(provider, event_id)]

    async def prune(self, older_than: datetime) -> int:
        return 0


class InMemoryRuleRepository:
    def __init__(self) -> None:
        self.items: Dict[UUID, AutoReplyRule] = {}

    async def get(self, rule_id: UUID) -> Optional[AutoReplyRule]:
        item = self.items.get(rule_id)
        return copy.deepcopy(item) if item else None

    async def list_active(self, session_id: UUID) -> List[AutoReplyRule]:
        return [copy.deepcopy(r) for r in self.items.values() if r.session_id == session_id and r.is_active]

    async def add(self, rule: AutoReplyRule) -> AutoReplyRule:
        self.items[rule.id] = copy.deepcopy(rule)
        return rule

    async def update(self, rule: AutoReplyRule) -> AutoReplyRule:
        usage = self.items[rule.id].usage_count
        self.items[rule.id] = copy.deepcopy(rule)
        self.items[rule.id].usage_count = usage
        return rule

    async def increment_usage(self, rule_id: UUID) -> None:
        self.items[rule_id].usage_count += 1


class InMemoryCampaignRepository:
    def __init__(self) -> None:
        self.items: Dict[UUID, Campaign] = {}
        self.progress_writes: List[Tuple[int, int]] = []

    async def get(self, campaign_id: UUID) -> Optional[Campaign]:
        item = self.items.get(campaign_id)
        return copy.deepcopy(item) if item else None

    async def add(self, campaign: Campaign) -> Campaign:
        self.items[campaign.id] = copy.deepcopy(campaign)
        return campaign

    async def update(self, campaign: Campaign) -> Campaign:
        if campaign.id not in self.items:
            raise CampaignNotFoundError("Campaign not found")
        self._store(campaign)
        return campaign

    async def compare_and_set_state(self, campaign: Campaign, expected: CampaignState) -> bool:
        stored = self.items.get(campaign.id)
        if stored is None or stored.state != expected:
            return False
        self._store(campaign)
        return True

    async def request_cancel(self, campaign_id: UUID) -> bool:
        stored = self.items.get(campaign_id)
        if stored is None or stored.state != CampaignState.RUNNING:
            return False
        stored.cancel_requested = True
        return True

    async def is_cancel_requested(self, campaign_id: UUID) -> bool:
        stored = self.items.get(campaign_id)
        return stored is not None and stored.cancel_requested

    def _store(self, campaign: Campaign) -> None:
        # like the SQL repository, only request_cancel writes the flag
        stored = self.items.get(campaign.id)
        item = copy.deepcopy(campaign)
        if stored is not None:
            item.cancel_requested = stored.cancel_requested
        self.items[campaign.id] = item

    async def update_progress(self, campaign: Campaign) -> None:
        stored = self.items[campaign.id]
        stored.sent_count = campaign.sent_count
        stored.failed_count = campaign.failed_count
        self.progress_writes.append((campaign.sent_count, campaign.failed_count))

    async def list_due(self, now: datetime, limit: int = 50) -> List[Campaign]:
        due = [c for c in self.items.values() if c.is_due(now)]
        due.sort(key=lambda c: c.scheduled_at)
        return [copy.deepcopy(c) for c in due[:limit]]


# ───────────────────────────── adapters ─────────────────────────────

def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected HTTP call: {request.method} {request.url}")


class ScriptedWhatsAppAdapter(WhatsAppGatewayAdapter):
    """
    Real gateway parsing and verification, scripted sends.

    ``outcomes`` are consumed one per send: a provider id string, an
    exception to raise, or None for an auto-generated id. ``per_recipient``
    takes precedence for the listed recipients.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None) -> None:
        super().__init__("http://gateway.test", client=httpx.AsyncClient(transport=httpx.MockTransport(_no_network)))
        self.outcomes: List[Any] = list(outcomes or [])
        self.per_recipient: Dict[str, List[Any]] = {}
        self.sent: List[Tuple[str, OutboundPayload]] = []
        self.before_send: Optional[Callable[[str], Any]] = None
        self._ids = itertools.count(1)

    async def send(self, session: ChannelSession, recipient: str, payload: OutboundPayload) -> DispatchResult:
        self.sent.append((recipient, payload))
        if self.before_send is not None:
            await self.before_send(recipient)
        queue = self.per_recipient.get(recipient)
        if queue:
            outcome = queue.pop(0)
        elif self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = None
        if isinstance(outcome, Exception):
            raise outcome
        return DispatchResult(provider_message_id=outcome or f"wamid.{next(self._ids)}")

    def recipients(self) -> List[str]:
        return [r for r, _ in self.sent]


def gateway_request(envelope: Dict[str, Any], key: Optional[str] = WEBHOOK_KEY) -> RawWebhookRequest:
    headers = {"Content-Type": "application/json"}
    if key is not None:
        headers[GATEWAY_KEY_HEADER] = key
    return RawWebhookRequest(body=json.dumps(envelope).encode(), headers=headers)


def gateway_message(message_id: str, text: Optional[str] = "hello", from_number: str = "628111", **data: Any) -> Dict[str, Any]:
    body = {"message_id": message_id, "from_number": from_number, "type": "text", "content": text}
    body.update(data)
    return {"event": "message", "data": body}


def gateway_status(message_id: str, status: str, **data: Any) -> Dict[str, Any]:
    body = {"message_id": message_id, "status": status}
    body.update(data)
    return {"event": "status", "data": body}


# ───────────────────────────── world ─────────────────────────────

@dataclass
class World:
    settings: Settings
    broker: EventBroker
    session_repository: InMemoryChannelSessionRepository
    sessions: ChannelSessionService
    messages: InMemoryMessageRepository
    conversations: InMemoryConversationRepository
    idempotency: InMemoryIdempotencyStore
    ledger: ConversationLedger
    tracker: DeliveryStateTracker
    adapter: ScriptedWhatsAppAdapter
    adapters: AdapterRegistry
    gates: ThrottleGateRegistry
    dispatcher: MessageDispatcher
    webhooks: WebhookIngestionService
    rules: InMemoryRuleRepository
    engine: AutoReplyEngine
    campaigns: InMemoryCampaignRepository
    executor: CampaignExecutor
    runner: CampaignRunner
    campaign_service: CampaignService

    async def add_session(self, **overrides: Any) -> ChannelSession:
        fields: Dict[str, Any] = dict(
            channel_type=ChannelType.WHATSAPP,
            external_id="device-1",
            credentials={"webhook_key": WEBHOOK_KEY},
            status=SessionStatus.CONNECTED,
        )
        fields.update(overrides)
        session = ChannelSession(**fields)
        await self.session_repository.add(session)
        return session


def build_world(settings: Settings, adapter: Optional[ScriptedWhatsAppAdapter] = None, clock: Callable[[], datetime] = utcnow) -> World:
    broker = EventBroker(settings.EVENT_QUEUE_SIZE, settings.SUBSCRIBER_QUEUE_SIZE)
    session_repository = InMemoryChannelSessionRepository()
    sessions = ChannelSessionService(session_repository, broker)
    conversations = InMemoryConversationRepository()
    messages = InMemoryMessageRepository(conversations)
    idempotency = InMemoryIdempotencyStore()
    ledger = ConversationLedger(messages, conversations)
    tracker = DeliveryStateTracker(messages, ledger, broker)
    adapter = adapter or ScriptedWhatsAppAdapter()
    adapters = AdapterRegistry([adapter])
    gates = ThrottleGateRegistry(settings)
    dispatcher = MessageDispatcher(tracker, adapters, gates, settings)
    webhooks = WebhookIngestionService(
        adapters, sessions, idempotency, ledger, tracker, broker, verify_token=settings.META_WEBHOOK_VERIFY_TOKEN
    )
    rules = InMemoryRuleRepository()
    engine = AutoReplyEngine(
        rules,
        dispatcher,
        ledger,
        clock=clock,
        max_attempts=settings.SEND_MAX_ATTEMPTS,
        backoff_base_ms=settings.SEND_BACKOFF_BASE_MS,
        backoff_max_ms=settings.SEND_BACKOFF_MAX_MS,
    )
    campaigns = InMemoryCampaignRepository()
    executor = CampaignExecutor(campaigns, session_repository, dispatcher, broker, settings)
    runner = CampaignRunner(executor)
    campaign_service = CampaignService(campaigns, session_repository, runner, settings)
    return World(
        settings=settings,
        broker=broker,
        session_repository=session_repository,
        sessions=sessions,
        messages=messages,
        conversations=conversations,
        idempotency=idempotency,
        ledger=ledger,
        tracker=tracker,
        adapter=adapter,
        adapters=adapters,
        gates=gates,
        dispatcher=dispatcher,
        webhooks=webhooks,
        rules=rules,
        engine=engine,
        campaigns=campaigns,
        executor=executor,
        runner=runner,
        campaign_service=campaign_service,
    )


def drain(subscription: Subscription) -> List[Any]:
    events = []
    while not subscription.queue.empty():
        events.append(subscription.queue.get_nowait())
    return events
