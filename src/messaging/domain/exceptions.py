# src/messaging/domain/exceptions.py
"""
Messaging Domain Exceptions
"""
from src.shared.exceptions import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationError


class DuplicateEvent(DomainError):
    """Idempotency hit. Not an error: the event is acknowledged and discarded."""

    code = "duplicate_event"
    status_code = 200


class EventInProgress(ConflictError):
    """Another worker holds a fresh claim on the event; the provider should retry later."""

    code = "event_in_progress"
    status_code = 503


class UnmatchedProviderId(DomainError):
    """Status webhook for a message we have no record of. Dropped with a warning."""

    code = "unmatched_provider_id"
    status_code = 200


class ConversationNotFoundError(NotFoundError):
    code = "conversation_not_found"


class MessageNotFoundError(NotFoundError):
    code = "message_not_found"


class DuplicateMessageError(ConflictError):
    """Provider message id already recorded for this session."""

    code = "duplicate_message"


class DuplicateConversationError(ConflictError):
    code = "duplicate_conversation"


class DispatchCancelled(DomainError):
    """A send was abandoned because its campaign was cancelled while waiting."""

    code = "cancelled"
    status_code = 409


class InvalidWebhookPayload(ValidationError):
    code = "invalid_json"
    status_code = 400


class WebhookVerificationFailed(ForbiddenError):
    """Meta subscription handshake with a wrong mode or verify token."""

    code = "verification_failed"
