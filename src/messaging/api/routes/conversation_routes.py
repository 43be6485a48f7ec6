"""Conversation read-side routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.dependencies import get_conversation_ledger
from src.messaging.api.schemas.conversation_dto import (
    ConversationListResponse,
    ConversationResponse,
    MessageListResponse,
    MessageResponse,
)
from src.messaging.application.services.conversation_ledger import ConversationLedger

router = APIRouter(prefix="/api", tags=["conversations"])


@router.get("/sessions/{session_id}/conversations", response_model=ConversationListResponse)
async def list_conversations(
    session_id: UUID,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ledger: ConversationLedger = Depends(get_conversation_ledger),
):
    """Conversations of one channel session, most recent activity first."""
    conversations = await ledger.list_conversations(session_id, unread_only=unread_only, limit=limit, offset=offset)
    return ConversationListResponse(
        items=[ConversationResponse.from_entity(c) for c in conversations],
        limit=limit,
        offset=offset,
    )


@router.get("/conversations/{conversation_id}/messages", response_model=MessageListResponse)
async def conversation_history(
    conversation_id: UUID,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: ConversationLedger = Depends(get_conversation_ledger),
):
    messages = await ledger.history(conversation_id, limit=limit, offset=offset)
    return MessageListResponse(
        conversation_id=conversation_id,
        items=[MessageResponse.from_entity(m) for m in messages],
        limit=limit,
        offset=offset,
    )


@router.post("/conversations/{conversation_id}/read", response_model=ConversationResponse)
async def mark_conversation_read(
    conversation_id: UUID,
    ledger: ConversationLedger = Depends(get_conversation_ledger),
):
    conversation = await ledger.mark_read(conversation_id)
    return ConversationResponse.from_entity(conversation)
