"""Auto-reply persistence contract."""

from abc import abstractmethod
from typing import List, Optional, Protocol
from uuid import UUID

from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule


class AutoReplyRuleRepository(Protocol):

    @abstractmethod
    async def get(self, rule_id: UUID) -> Optional[AutoReplyRule]:
        ...

    @abstractmethod
    async def list_active(self, session_id: UUID) -> List[AutoReplyRule]:
        """Active rules of a session; order is not significant."""
        ...

    @abstractmethod
    async def add(self, rule: AutoReplyRule) -> AutoReplyRule:
        ...

    @abstractmethod
    async def update(self, rule: AutoReplyRule) -> AutoReplyRule:
        ...

    @abstractmethod
    async def increment_usage(self, rule_id: UUID) -> None:
        """Atomic ``usage_count = usage_count + 1`` in storage."""
        ...
