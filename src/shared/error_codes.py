# src/shared/error_codes.py
# Central mapping that aligns with the error contract.
# Keys are part of the public error contract.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },
    "invalid_request": {
        "http": 400,
        "message": "Invalid request payload."
    },

    # ─── Webhooks ───────────────────────────────────────────────────────────
    "invalid_signature": {
        "http": 403,
        "message": "Webhook signature verification failed."
    },
    "verification_failed": {
        "http": 403,
        "message": "Webhook subscription verification failed."
    },
    "invalid_json": {
        "http": 400,
        "message": "Webhook body is not valid JSON."
    },

    # ─── Resources ──────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "session_not_found": {
        "http": 404,
        "message": "Channel session not found."
    },
    "campaign_not_found": {
        "http": 404,
        "message": "Campaign not found."
    },
    "conversation_not_found": {
        "http": 404,
        "message": "Conversation not found."
    },
    "conflict": {
        "http": 409,
        "message": "Request conflicts with the current state of the resource."
    },
    "invalid_campaign_transition": {
        "http": 409,
        "message": "Campaign cannot move to the requested state."
    },
    "message_not_found": {
        "http": 404,
        "message": "Message not found."
    },
    "rule_not_found": {
        "http": 404,
        "message": "Auto-reply rule not found."
    },
    "duplicate_message": {
        "http": 409,
        "message": "Provider message id already recorded."
    },
    "duplicate_conversation": {
        "http": 409,
        "message": "Conversation already exists."
    },

    # ─── Idempotency ────────────────────────────────────────────────────────
    "duplicate_event": {
        "http": 200,
        "message": "Webhook event already processed."
    },
    "event_in_progress": {
        "http": 503,
        "message": "Webhook event is being processed; retry later."
    },
    "unmatched_provider_id": {
        "http": 200,
        "message": "Status update for an unknown provider message id."
    },

    # ─── Providers ──────────────────────────────────────────────────────────
    "provider_transient": {
        "http": 502,
        "message": "Channel provider is temporarily unavailable."
    },
    "provider_permanent": {
        "http": 422,
        "message": "Channel provider rejected the request."
    },
    "rate_limited": {
        "http": 429,
        "message": "Too many requests."
    },
    "rate_limit_timeout": {
        "http": 503,
        "message": "Timed out waiting for a send slot."
    },

    # ─── Server ─────────────────────────────────────────────────────────────
    "internal_error": {
        "http": 500,
        "message": "Internal server error."
    },
    "crypto_error": {
        "http": 500,
        "message": "Credential encryption failure."
    },
}
