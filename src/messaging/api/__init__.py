"""Messaging API module initialization."""

from src.messaging.api.routes import conversation_routes, event_stream, webhook_routes

# Webhook routes are registered without the /api prefix
webhook_router = webhook_routes.router
conversation_router = conversation_routes.router
event_stream_router = event_stream.router

__all__ = ["webhook_router", "conversation_router", "event_stream_router"]
