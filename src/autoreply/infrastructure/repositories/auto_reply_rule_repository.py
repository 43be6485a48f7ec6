"""Auto-reply rule repository implementation."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule, BusinessHours
from src.autoreply.domain.exceptions import RuleNotFoundError
from src.autoreply.infrastructure.models.auto_reply_rule_model import AutoReplyRuleModel
from src.channels.domain.value_objects import OutboundPayload
from src.shared.infrastructure.database.base_model import as_utc


class SqlAutoReplyRuleRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, rule_id: UUID) -> Optional[AutoReplyRule]:
        async with self.session_factory() as db:
            model = await db.get(AutoReplyRuleModel, rule_id)
            return self._to_entity(model) if model else None

    async def list_active(self, session_id: UUID) -> List[AutoReplyRule]:
        stmt = (
            select(AutoReplyRuleModel)
            .where(AutoReplyRuleModel.session_id == session_id, AutoReplyRuleModel.is_active.is_(True))
            .order_by(AutoReplyRuleModel.priority.desc(), AutoReplyRuleModel.created_at.asc())
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return [self._to_entity(m) for m in result.scalars().all()]

    async def add(self, rule: AutoReplyRule) -> AutoReplyRule:
        async with self.session_factory() as db, db.begin():
            db.add(self._to_model(rule))
        return rule

    async def update(self, rule: AutoReplyRule) -> AutoReplyRule:
        async with self.session_factory() as db, db.begin():
            model = await db.get(AutoReplyRuleModel, rule.id)
            if model is None:
                raise RuleNotFoundError("Auto-reply rule not found", details={"rule_id": str(rule.id)})
            model.name = rule.name
            model.trigger_type = rule.trigger_type
            model.trigger_value = rule.trigger_value
            model.reply = rule.reply.to_dict()
            model.priority = rule.priority
            model.is_active = rule.is_active
            model.only_first_message = rule.only_first_message
            model.business_hours = rule.business_hours.to_dict() if rule.business_hours else None
            model.updated_at = rule.updated_at
        return rule

    async def increment_usage(self, rule_id: UUID) -> None:
        stmt = (
            update(AutoReplyRuleModel)
            .where(AutoReplyRuleModel.id == rule_id)
            .values(usage_count=AutoReplyRuleModel.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db, db.begin():
            await db.execute(stmt)

    @staticmethod
    def _to_model(rule: AutoReplyRule) -> AutoReplyRuleModel:
        return AutoReplyRuleModel(
            id=rule.id,
            session_id=rule.session_id,
            name=rule.name,
            trigger_type=rule.trigger_type,
            trigger_value=rule.trigger_value,
            reply=rule.reply.to_dict(),
            priority=rule.priority,
            is_active=rule.is_active,
            usage_count=rule.usage_count,
            only_first_message=rule.only_first_message,
            business_hours=rule.business_hours.to_dict() if rule.business_hours else None,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )

    @staticmethod
    def _to_entity(model: AutoReplyRuleModel) -> AutoReplyRule:
        return AutoReplyRule(
            id=model.id,
            session_id=model.session_id,
            name=model.name,
            trigger_type=model.trigger_type,
            trigger_value=model.trigger_value,
            reply=OutboundPayload.from_dict(model.reply),
            priority=model.priority,
            is_active=model.is_active,
            usage_count=model.usage_count,
            only_first_message=model.only_first_message,
            business_hours=BusinessHours.from_dict(model.business_hours) if model.business_hours else None,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
