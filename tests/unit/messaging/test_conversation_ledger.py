from uuid import uuid4

import pytest

from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import ConversationNotFoundError
from src.messaging.domain.value_objects import MessageDirection


def inbound(session_id, customer_id="628111", provider_id=None, content="hi"):
    return Message(
        session_id=session_id,
        direction=MessageDirection.INCOMING,
        customer_id=customer_id,
        content=content,
        provider_message_id=provider_id,
    )


async def test_one_conversation_per_customer(world):
    session_id = uuid4()
    a = await world.ledger.record(inbound(session_id, provider_id="p1"))
    b = await world.ledger.record(inbound(session_id, provider_id="p2", content="again"))
    c = await world.ledger.record(inbound(session_id, customer_id="628222", provider_id="p3"))

    assert a.conversation.id == b.conversation.id != c.conversation.id
    history = await world.ledger.history(a.conversation.id)
    assert [m.content for m in history] == ["hi", "again"]
    assert (await world.ledger.get_conversation(a.conversation.id)).inbound_count == 2


async def test_same_provider_id_is_not_appended_twice(world):
    session_id = uuid4()
    first = await world.ledger.record(inbound(session_id, provider_id="p1"))
    again = await world.ledger.record(inbound(session_id, provider_id="p1"))
    assert first.created and not again.created
    assert again.message.id == first.message.id
    assert len(world.messages.items) == 1


async def test_first_inbound_detection(world):
    session_id = uuid4()
    first = await world.ledger.record(inbound(session_id, provider_id="p1"))
    assert await world.ledger.is_first_inbound(first.message) is True
    second = await world.ledger.record(inbound(session_id, provider_id="p2"))
    assert await world.ledger.is_first_inbound(second.message) is False
    # still first after later messages arrive
    assert await world.ledger.is_first_inbound(first.message) is True


async def test_two_quick_messages_have_one_first(world):
    session_id = uuid4()
    a = inbound(session_id, provider_id="p1")
    b = inbound(session_id, provider_id="p2")
    b.created_at = a.created_at
    await world.ledger.record(a)
    await world.ledger.record(b)

    # both are recorded before either check runs
    assert [await world.ledger.is_first_inbound(m) for m in (a, b)].count(True) == 1


async def test_unread_filter_and_mark_read(world):
    session_id = uuid4()
    a = await world.ledger.record(inbound(session_id, customer_id="1"))
    await world.ledger.record(inbound(session_id, customer_id="2"))

    await world.ledger.mark_read(a.conversation.id)

    unread = await world.ledger.list_conversations(session_id, unread_only=True)
    assert [c.customer_id for c in unread] == ["2"]
    assert len(await world.ledger.list_conversations(session_id)) == 2


async def test_assign_agent(world):
    entry = await world.ledger.record(inbound(uuid4()))
    agent = uuid4()
    assert (await world.ledger.assign(entry.conversation.id, agent)).assigned_agent_id == agent
    assert (await world.ledger.assign(entry.conversation.id, None)).assigned_agent_id is None


async def test_unknown_conversation(world):
    with pytest.raises(ConversationNotFoundError):
        await world.ledger.history(uuid4())
