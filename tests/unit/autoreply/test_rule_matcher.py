from datetime import datetime, time, timedelta, timezone
from uuid import uuid4

import pytest

from src.autoreply.domain.entities.auto_reply_rule import AutoReplyRule, BusinessHours, TriggerType
from src.autoreply.domain.services.rule_matcher import RuleMatcher
from src.channels.domain.value_objects import OutboundPayload

SESSION = uuid4()
# A Wednesday
NOON = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def rule(trigger_type, value=None, priority=0, **kwargs):
    return AutoReplyRule(
        session_id=SESSION,
        name=f"{trigger_type}:{value}",
        trigger_type=trigger_type,
        trigger_value=value,
        priority=priority,
        reply=OutboundPayload.text_message("auto"),
        **kwargs,
    )


@pytest.mark.parametrize(
    "trigger, value, text, expected",
    [
        (TriggerType.EXACT, "Hello", "  hello ", True),
        (TriggerType.EXACT, "hello", "hello there", False),
        (TriggerType.CONTAINS, "PRICE", "what is the price?", True),
        (TriggerType.STARTS_WITH, "order", "Order #12 status", True),
        (TriggerType.STARTS_WITH, "order", "my order", False),
        (TriggerType.ENDS_WITH, "thanks", "ok THANKS", True),
        (TriggerType.KEYWORD, "price, cost", "how much does it cost", True),
        (TriggerType.KEYWORD, "cost", "costume party", False),
        (TriggerType.REGEX, r"^\d{4}$", "1234", True),
        (TriggerType.REGEX, r"^HELP", "help", False),
        (TriggerType.ALL, None, "anything", True),
    ],
)
def test_trigger_types(trigger, value, text, expected):
    assert RuleMatcher().matches(rule(trigger, value), text) is expected


def test_specific_rules_beat_catch_all_regardless_of_priority():
    catch_all = rule(TriggerType.ALL, priority=100)
    specific = rule(TriggerType.CONTAINS, "hi", priority=1)
    assert RuleMatcher().select([catch_all, specific], "hi there", now=NOON) is specific
    assert RuleMatcher().select([catch_all, specific], "bye", now=NOON) is catch_all


def test_priority_then_creation_order():
    older = rule(TriggerType.CONTAINS, "hi", priority=5, created_at=NOON - timedelta(days=1))
    newer = rule(TriggerType.CONTAINS, "hi", priority=5, created_at=NOON)
    urgent = rule(TriggerType.CONTAINS, "hi", priority=9, created_at=NOON)
    matcher = RuleMatcher()
    assert matcher.select([newer, older], "hi", now=NOON) is older
    assert matcher.select([newer, older, urgent], "hi", now=NOON) is urgent


def test_selection_is_deterministic_across_input_orders():
    rules = [rule(TriggerType.CONTAINS, "a", priority=3, created_at=NOON) for _ in range(5)]
    expected = min(rules, key=lambda r: str(r.id))
    for shuffled in (rules, list(reversed(rules)), rules[2:] + rules[:2]):
        assert RuleMatcher().select(shuffled, "a", now=NOON) is expected


def test_inactive_and_first_message_gates():
    inactive = rule(TriggerType.ALL, is_active=False)
    first_only = rule(TriggerType.ALL, only_first_message=True)
    matcher = RuleMatcher()
    assert matcher.select([inactive], "hi", now=NOON) is None
    assert matcher.select([first_only], "hi", now=NOON, is_first_message=True) is first_only
    assert matcher.select([first_only], "hi", now=NOON, is_first_message=False) is None


def test_business_hours_gate():
    office = rule(TriggerType.ALL, business_hours=BusinessHours(start=time(9), end=time(17), days=(0, 1, 2, 3, 4)))
    matcher = RuleMatcher()
    assert matcher.select([office], "hi", now=NOON) is office
    assert matcher.select([office], "hi", now=NOON.replace(hour=20)) is None
    assert matcher.select([office], "hi", now=NOON + timedelta(days=3)) is None  # Saturday


def test_business_hours_wrap_midnight_and_timezone():
    night = BusinessHours.from_dict({"start": "22:00", "end": "06:00"})
    assert night.contains(NOON.replace(hour=23))
    assert night.contains(NOON.replace(hour=5, minute=59))
    assert not night.contains(NOON)

    jakarta = BusinessHours.from_dict({"start": "09:00", "end": "17:00", "timezone": "Asia/Jakarta"})
    assert jakarta.contains(NOON.replace(hour=3))  # 10:00 in Jakarta
    assert not jakarta.contains(NOON)  # 19:00 in Jakarta
    assert jakarta.to_dict() == {"start": "09:00", "end": "17:00", "days": [], "timezone": "Asia/Jakarta"}


def test_bad_business_days_rejected():
    with pytest.raises(ValueError):
        BusinessHours.from_dict({"days": [7]})


def test_invalid_regex_is_skipped():
    broken = rule(TriggerType.REGEX, "([", priority=10)
    fallback = rule(TriggerType.CONTAINS, "x")
    assert RuleMatcher().select([broken, fallback], "x", now=NOON) is fallback


def test_specific_trigger_requires_value():
    with pytest.raises(ValueError):
        rule(TriggerType.KEYWORD, "  ")
