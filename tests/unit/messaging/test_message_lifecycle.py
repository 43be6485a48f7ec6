from datetime import timedelta
from uuid import uuid4

import pytest

from src.channels.domain.value_objects import OutboundPayload
from src.messaging.domain.entities.conversation import Conversation, truncate_preview
from src.messaging.domain.entities.message import Message, can_transition
from src.messaging.domain.value_objects import ContentType, ConversationStatus, MessageDirection, MessageStatus
from src.shared.domain.base_entity import utcnow

S = MessageStatus


@pytest.mark.parametrize(
    "current, new, allowed",
    [
        (S.PENDING, S.SENT, True),
        (S.PENDING, S.DELIVERED, True),
        (S.PENDING, S.FAILED, True),
        (S.SENT, S.READ, True),
        (S.SENT, S.FAILED, True),
        (S.DELIVERED, S.READ, True),
        (S.DELIVERED, S.SENT, False),
        (S.DELIVERED, S.FAILED, False),
        (S.READ, S.DELIVERED, False),
        (S.READ, S.FAILED, False),
        (S.FAILED, S.SENT, False),
        (S.SENT, S.SENT, False),
    ],
)
def test_transitions_only_move_forward(current, new, allowed):
    assert can_transition(current, new) is allowed


def outgoing() -> Message:
    return Message.outgoing(session_id=uuid4(), customer_id="628111", payload=OutboundPayload.text_message("hi"))


def test_outgoing_starts_pending_and_incoming_starts_delivered():
    assert outgoing().status == S.PENDING
    incoming = Message(session_id=uuid4(), direction=MessageDirection.INCOMING, customer_id="628111")
    assert incoming.status == S.DELIVERED


def test_sent_requires_provider_id():
    message = outgoing()
    with pytest.raises(ValueError):
        message.advance(S.SENT)
    assert message.mark_sent("wamid.1") is True
    assert message.sent_at is not None
    assert message.mark_sent("wamid.2") is False
    assert message.provider_message_id == "wamid.1"


def test_read_fills_skipped_timestamps():
    message = outgoing()
    message.mark_sent("wamid.1")
    at = utcnow() + timedelta(seconds=5)
    assert message.advance(S.READ, at=at) is True
    assert message.delivered_at == at
    assert message.read_at == at
    assert message.advance(S.DELIVERED) is False
    assert message.status == S.READ


def test_failure_records_code_and_reason():
    message = outgoing()
    assert message.mark_failed("invalid_number", "bad number") is True
    assert (message.status, message.error_code, message.error_message) == (S.FAILED, "invalid_number", "bad number")
    assert message.failed_at is not None
    assert message.mark_failed("other", "again") is False
    assert message.error_code == "invalid_number"


def test_outgoing_media_payload_keeps_url_and_auto_reply_source():
    rule_id = uuid4()
    payload = OutboundPayload(content_type=ContentType.DOCUMENT, media_url="https://cdn.test/a.pdf", filename="a.pdf")
    message = Message.outgoing(session_id=uuid4(), customer_id="1", payload=payload, auto_reply_source=rule_id)
    assert message.media == {"url": "https://cdn.test/a.pdf", "filename": "a.pdf"}
    assert message.is_auto_reply and message.auto_reply_source == rule_id
    assert message.text is None
    assert message.preview == "[document]"


def test_conversation_tracks_latest_message():
    session_id = uuid4()
    conversation = Conversation(session_id=session_id, customer_id="628111")
    first = Message(session_id=session_id, direction=MessageDirection.INCOMING, customer_id="628111", content="hi")
    older = Message(
        session_id=session_id,
        direction=MessageDirection.OUTGOING,
        customer_id="628111",
        content="stale",
        created_at=first.created_at - timedelta(minutes=1),
    )

    conversation.record(first, customer_name="Ann")
    conversation.record(older)

    assert conversation.last_message_preview == "hi"
    assert conversation.unread is True
    assert conversation.inbound_count == 1
    assert conversation.customer_name == "Ann"
    assert first.conversation_id == conversation.id
    assert conversation.mark_read() is True
    assert conversation.mark_read() is False


def test_archived_conversation_reopens_on_new_message():
    conversation = Conversation(session_id=uuid4(), customer_id="1")
    conversation.archive()
    conversation.record(Message(session_id=conversation.session_id, direction=MessageDirection.INCOMING, customer_id="1"))
    assert conversation.status == ConversationStatus.OPEN


def test_preview_is_truncated():
    text = truncate_preview("word " * 100)
    assert len(text) == 120
    assert text.endswith("…")
    assert truncate_preview("  short\n text ") == "short text"
