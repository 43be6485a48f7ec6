"""
Rule Matcher
Pure, deterministic selection of the auto-reply rule for an inbound text.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Pattern

from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule, TriggerType
from src.autoreply.domain.exceptions import RuleCompilationError
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


def _fold(value: str) -> str:
    return value.strip().casefold()


def _keywords(value: str) -> List[str]:
    return [k for k in (_fold(part) for part in value.split(",")) if k]


class RuleMatcher:
    """
    Ordering: specific rules by priority desc, then creation time, then id;
    catch-all (``all``) rules only after every specific rule, in the same
    order among themselves. The first rule that passes its gates and matches
    wins.
    """

    def __init__(self) -> None:
        self._patterns: Dict[str, Pattern[str]] = {}

    def select(
        self,
        rules: Iterable[AutoReplyRule],
        text: str,
        *,
        now: datetime,
        is_first_message: bool = False,
    ) -> Optional[AutoReplyRule]:
        active = [r for r in rules if r.is_active]
        specific = sorted((r for r in active if not r.is_catch_all), key=AutoReplyRule.sort_key)
        catch_all = sorted((r for r in active if r.is_catch_all), key=AutoReplyRule.sort_key)

        for rule in specific + catch_all:
            if rule.only_first_message and not is_first_message:
                continue
            if rule.business_hours is not None and not rule.business_hours.contains(now):
                continue
            try:
                if self.matches(rule, text):
                    return rule
            except RuleCompilationError as e:
                logger.warning(
                    "Skipping auto-reply rule with invalid pattern",
                    extra={"rule_id": str(rule.id), "error": e.message},
                )
        return None

    def matches(self, rule: AutoReplyRule, text: str) -> bool:
        """
        Raises:
            RuleCompilationError: ``regex`` rule whose pattern does not compile
        """
        trigger = rule.trigger_type
        if trigger == TriggerType.ALL:
            return True

        value = rule.trigger_value or ""
        if trigger == TriggerType.REGEX:
            return self._compile(value).search(text) is not None

        folded = _fold(text)
        if trigger == TriggerType.EXACT:
            return folded == _fold(value)
        if trigger == TriggerType.CONTAINS:
            return _fold(value) in folded
        if trigger == TriggerType.STARTS_WITH:
            return folded.startswith(_fold(value))
        if trigger == TriggerType.ENDS_WITH:
            return folded.endswith(_fold(value))
        if trigger == TriggerType.KEYWORD:
            # Comma-separated alternatives, each matched as a whole word
            return any(
                re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", folded) is not None
                for keyword in _keywords(value)
            )
        return False

    def _compile(self, pattern: str) -> Pattern[str]:
        compiled = self._patterns.get(pattern)
        if compiled is None:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise RuleCompilationError(
                    f"Invalid regex trigger: {e}", details={"pattern": pattern}
                ) from e
            self._patterns[pattern] = compiled
        return compiled
