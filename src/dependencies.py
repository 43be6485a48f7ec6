# src/dependencies.py
"""
Composition root: every service is built once per process and hung on
``app.state.container``; FastAPI dependencies below hand out its parts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Request
from redis.asyncio import Redis

from src.config import Settings
from src.autoreply.application.services.auto_reply_engine import AutoReplyEngine
from src.autoreply.infrastructure.repositories.auto_reply_rule_repository import SqlAutoReplyRuleRepository
from src.broadcast.application.services.campaign_executor import CampaignExecutor
from src.broadcast.application.services.campaign_runner import CampaignRunner
from src.broadcast.application.services.campaign_service import CampaignService
from src.broadcast.infrastructure.repositories.campaign_repository import SqlCampaignRepository
from src.channels.application.services.session_service import ChannelSessionService
from src.channels.infrastructure.adapters.registry import AdapterRegistry, build_adapter_registry
from src.channels.infrastructure.rate_limiter import ThrottleGateRegistry
from src.channels.infrastructure.repositories.channel_session_repository import SqlChannelSessionRepository
from src.messaging.application.services.conversation_ledger import ConversationLedger
from src.messaging.application.services.delivery_tracker import DeliveryStateTracker
from src.messaging.application.services.dispatch_service import MessageDispatcher
from src.messaging.application.services.webhook_service import WebhookIngestionService
from src.messaging.domain.protocols import IdempotencyStore
from src.messaging.infrastructure.idempotency.redis_store import RedisIdempotencyStore
from src.messaging.infrastructure.idempotency.sql_store import SqlIdempotencyStore
from src.messaging.infrastructure.repositories.conversation_repository import SqlConversationRepository
from src.messaging.infrastructure.repositories.message_repository import SqlMessageRepository
from src.shared.infrastructure.cache.redis_cache import RedisCache
from src.shared.infrastructure.database.session import DatabaseSessionFactory
from src.shared.infrastructure.messaging.event_bus import EventBroker
from src.shared.infrastructure.observability.logger import get_logger
from src.shared.infrastructure.security.encryption import EncryptionManager
from src.workers.idempotency_prune_worker import IdempotencyPruneWorker
from src.workers.manager import WorkerManager
from src.workers.scheduled_campaign_worker import ScheduledCampaignWorker

logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    database: DatabaseSessionFactory
    cache: Optional[RedisCache]
    broker: EventBroker
    http_client: httpx.AsyncClient
    adapters: AdapterRegistry
    gates: ThrottleGateRegistry
    session_repository: SqlChannelSessionRepository
    sessions: ChannelSessionService
    message_repository: SqlMessageRepository
    conversation_repository: SqlConversationRepository
    idempotency: IdempotencyStore
    ledger: ConversationLedger
    tracker: DeliveryStateTracker
    dispatcher: MessageDispatcher
    webhooks: WebhookIngestionService
    rule_repository: SqlAutoReplyRuleRepository
    auto_reply: AutoReplyEngine
    campaign_repository: SqlCampaignRepository
    campaign_runner: CampaignRunner
    campaigns: CampaignService
    workers: WorkerManager

    @classmethod
    def build(cls, settings: Settings) -> "Container":
        database = DatabaseSessionFactory(settings.DATABASE_URL, echo=settings.DB_ECHO)
        session_factory = database.session_factory

        cache = None
        if settings.REDIS_URL:
            cache = RedisCache(Redis.from_url(settings.REDIS_URL, decode_responses=True))

        broker = EventBroker(settings.EVENT_QUEUE_SIZE, settings.SUBSCRIBER_QUEUE_SIZE)
        http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        adapters = build_adapter_registry(settings, client=http_client)
        gates = cls._throttle_gates(settings, cache)

        session_repository = SqlChannelSessionRepository(session_factory, EncryptionManager(settings.ENCRYPTION_KEY))
        sessions = ChannelSessionService(session_repository, broker)

        message_repository = SqlMessageRepository(session_factory)
        conversation_repository = SqlConversationRepository(session_factory)
        idempotency = cls._idempotency_store(settings, database, cache)

        ledger = ConversationLedger(message_repository, conversation_repository)
        tracker = DeliveryStateTracker(message_repository, ledger, broker)
        dispatcher = MessageDispatcher(tracker, adapters, gates, settings)
        webhooks = WebhookIngestionService(
            adapters,
            sessions,
            idempotency,
            ledger,
            tracker,
            broker,
            verify_token=settings.META_WEBHOOK_VERIFY_TOKEN,
        )

        rule_repository = SqlAutoReplyRuleRepository(session_factory)
        auto_reply = AutoReplyEngine(
            rule_repository,
            dispatcher,
            ledger,
            max_attempts=settings.SEND_MAX_ATTEMPTS,
            backoff_base_ms=settings.SEND_BACKOFF_BASE_MS,
            backoff_max_ms=settings.SEND_BACKOFF_MAX_MS,
        )

        campaign_repository = SqlCampaignRepository(session_factory)
        executor = CampaignExecutor(campaign_repository, session_repository, dispatcher, broker, settings)
        campaign_runner = CampaignRunner(executor)
        campaigns = CampaignService(campaign_repository, session_repository, campaign_runner, settings)

        workers = WorkerManager()
        workers.register_worker(
            ScheduledCampaignWorker(campaign_repository, campaign_runner, interval=settings.SCHEDULER_INTERVAL_SECONDS)
        )
        workers.register_worker(
            IdempotencyPruneWorker(
                idempotency,
                retention_hours=settings.IDEMPOTENCY_RETENTION_HOURS,
                interval=settings.PRUNE_INTERVAL_SECONDS,
            )
        )

        return cls(
            settings=settings,
            database=database,
            cache=cache,
            broker=broker,
            http_client=http_client,
            adapters=adapters,
            gates=gates,
            session_repository=session_repository,
            sessions=sessions,
            message_repository=message_repository,
            conversation_repository=conversation_repository,
            idempotency=idempotency,
            ledger=ledger,
            tracker=tracker,
            dispatcher=dispatcher,
            webhooks=webhooks,
            rule_repository=rule_repository,
            auto_reply=auto_reply,
            campaign_repository=campaign_repository,
            campaign_runner=campaign_runner,
            campaigns=campaigns,
            workers=workers,
        )

    @staticmethod
    def _throttle_gates(settings: Settings, cache: Optional[RedisCache]) -> ThrottleGateRegistry:
        backend = settings.RATE_LIMIT_BACKEND or ("redis" if cache is not None else "memory")
        if backend == "redis":
            if cache is None:
                raise ValueError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")
            return ThrottleGateRegistry(settings, cache.redis)
        return ThrottleGateRegistry(settings)

    @staticmethod
    def _idempotency_store(
        settings: Settings,
        database: DatabaseSessionFactory,
        cache: Optional[RedisCache],
    ) -> IdempotencyStore:
        if settings.IDEMPOTENCY_BACKEND == "redis":
            if cache is None:
                raise ValueError("IDEMPOTENCY_BACKEND=redis requires REDIS_URL")
            return RedisIdempotencyStore(
                cache,
                claim_timeout_seconds=settings.IDEMPOTENCY_CLAIM_TIMEOUT_SECONDS,
                retention_seconds=settings.IDEMPOTENCY_RETENTION_HOURS * 3600,
            )
        return SqlIdempotencyStore(database.session_factory, settings.IDEMPOTENCY_CLAIM_TIMEOUT_SECONDS)

    async def start(self, run_workers: Optional[bool] = None) -> None:
        self.broker.start()
        if self.settings.ENABLE_WORKERS if run_workers is None else run_workers:
            await self.workers.start_all()
        logger.info("Container started", extra={"environment": self.settings.ENVIRONMENT})

    async def shutdown(self) -> None:
        """Stop intake first, then let running campaigns wind down, then release resources."""
        await self.workers.shutdown()
        await self.campaign_runner.shutdown(self.settings.SHUTDOWN_GRACE_SECONDS)
        await self.broker.stop()
        await self.adapters.aclose()
        await self.http_client.aclose()
        if self.cache is not None:
            await self.cache.redis.aclose()
        await self.database.dispose()
        logger.info("Container stopped")


# --- FastAPI dependencies ---

def get_container(request: Request) -> Container:
    return request.app.state.container


def get_webhook_service(container: Container = Depends(get_container)) -> WebhookIngestionService:
    return container.webhooks


def get_auto_reply_engine(container: Container = Depends(get_container)) -> AutoReplyEngine:
    return container.auto_reply


def get_campaign_service(container: Container = Depends(get_container)) -> CampaignService:
    return container.campaigns


def get_conversation_ledger(container: Container = Depends(get_container)) -> ConversationLedger:
    return container.ledger


def get_event_broker(container: Container = Depends(get_container)) -> EventBroker:
    return container.broker
