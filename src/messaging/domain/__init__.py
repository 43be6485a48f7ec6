"""Messaging domain: messages, conversations, idempotency records."""
