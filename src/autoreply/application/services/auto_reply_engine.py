"""
Auto-Reply Engine
Answers newly recorded inbound messages from the session's rule set.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Iterable, Optional

from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule
from src.autoreply.domain.protocols import AutoReplyRuleRepository
from src.autoreply.domain.services.rule_matcher import RuleMatcher
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import ProviderError
from src.messaging.application.services.conversation_ledger import ConversationLedger
from src.messaging.application.services.dispatch_service import MessageDispatcher
from src.messaging.application.services.webhook_service import ReceivedMessage
from src.messaging.domain.entities.message import Message
from src.shared.domain.base_entity import utcnow
from src.shared.infrastructure.observability.logger import get_logger
from src.shared.utils.retry import backoff_delay

logger = get_logger(__name__)


class AutoReplyEngine:
    """
    Runs after the webhook is acknowledged, so failures never reach the
    provider. Rule lookup is retried with backoff up to ``max_attempts``;
    sending is left to the dispatcher's own retry loop.
    """

    def __init__(
        self,
        rules: AutoReplyRuleRepository,
        dispatcher: MessageDispatcher,
        ledger: ConversationLedger,
        matcher: Optional[RuleMatcher] = None,
        clock: Callable[[], datetime] = utcnow,
        *,
        max_attempts: int = 3,
        backoff_base_ms: int = 500,
        backoff_max_ms: int = 8000,
    ) -> None:
        self.rules = rules
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.matcher = matcher or RuleMatcher()
        self._clock = clock
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.backoff_max_ms = backoff_max_ms

    async def handle(self, session: ChannelSession, message: Message) -> Optional[Message]:
        """
        Select a rule for ``message`` and send its reply through the shared dispatch path.

        Returns:
            The reply message, or None when nothing was sent
        """
        rule = await self.select_rule(session, message)
        if rule is None:
            return None
        return await self._reply(session, message, rule)

    async def select_rule(self, session: ChannelSession, message: Message) -> Optional[AutoReplyRule]:
        if not session.auto_reply_enabled or not message.is_incoming:
            return None
        text = message.text
        if text is None:
            return None

        rules = await self.rules.list_active(session.id)
        if not rules:
            return None
        is_first = False
        if any(r.only_first_message for r in rules):
            is_first = await self.ledger.is_first_inbound(message)

        rule = self.matcher.select(rules, text, now=self._clock(), is_first_message=is_first)
        if rule is None:
            logger.debug("No auto-reply rule matched", extra={"session_id": str(session.id), "message_id": str(message.id)})
        return rule

    async def _reply(self, session: ChannelSession, message: Message, rule: AutoReplyRule) -> Optional[Message]:
        await self.rules.increment_usage(rule.id)
        logger.info(
            "Auto-reply rule matched",
            extra={"session_id": str(session.id), "rule_id": str(rule.id), "trigger_type": rule.trigger_type.value},
        )
        try:
            return await self.dispatcher.dispatch(
                session,
                message.customer_id,
                rule.reply,
                auto_reply_rule_id=rule.id,
            )
        except ProviderError as e:
            logger.warning(
                "Auto-reply send failed",
                extra={"session_id": str(session.id), "rule_id": str(rule.id), "code": e.code, "error": e.message},
            )
            return None

    async def _select_with_retry(self, session: ChannelSession, message: Message) -> Optional[AutoReplyRule]:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.select_rule(session, message)
            except Exception as e:
                if attempt >= self.max_attempts:
                    raise
                delay = backoff_delay(attempt, base_ms=self.backoff_base_ms, max_ms=self.backoff_max_ms)
                logger.warning(
                    "Auto-reply rule lookup failed, backing off",
                    extra={
                        "session_id": str(session.id),
                        "message_id": str(message.id),
                        "attempt": attempt,
                        "delay_seconds": round(delay, 3),
                        "error": str(e),
                    },
                )
                await asyncio.sleep(delay)

    async def handle_many(self, received: Iterable[ReceivedMessage]) -> int:
        """Background entry point after a webhook is acknowledged. Returns replies sent."""
        sent = 0
        for item in received:
            try:
                rule = await self._select_with_retry(item.session, item.message)
                if rule is not None and await self._reply(item.session, item.message, rule) is not None:
                    sent += 1
            except Exception:
                logger.exception(
                    "Auto-reply handling gave up",
                    extra={"session_id": str(item.session.id), "message_id": str(item.message.id)},
                )
        return sent
