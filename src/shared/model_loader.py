# src/shared/model_loader.py
"""
Centralized, side-effect-only imports so SQLAlchemy mappers are registered
without circular imports between model modules.
"""
import importlib

MODEL_MODULES = (
    "src.channels.infrastructure.models.channel_session_model",
    "src.messaging.infrastructure.models.message_model",
    "src.messaging.infrastructure.models.conversation_model",
    "src.messaging.infrastructure.models.idempotency_model",
    "src.broadcast.infrastructure.models.campaign_model",
    "src.autoreply.infrastructure.models.auto_reply_rule_model",
)


def import_all_models() -> None:
    """Import model modules for their side-effects (mapper registration)."""
    for path in MODEL_MODULES:
        importlib.import_module(path)
