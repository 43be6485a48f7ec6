"""Channel session aggregate: one authenticated provider connection of a tenant."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from src.shared.domain.base_entity import BaseEntity, utcnow
from src.channels.domain.exceptions import PermanentProviderError
from src.channels.domain.value_objects import ChannelType, SessionStatus


class ChannelSession(BaseEntity):
    """
    A WhatsApp device pairing, Telegram bot, Messenger page or Instagram account.

    ``credentials`` holds decrypted material in memory only; repositories
    encrypt it at rest.
    """

    def __init__(
        self,
        *,
        channel_type: ChannelType,
        external_id: str,
        tenant_id: Optional[UUID] = None,
        credentials: Optional[Dict[str, Any]] = None,
        status: SessionStatus = SessionStatus.CONNECTING,
        rate_limit_class: Optional[str] = None,
        display_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        auto_reply_enabled: bool = True,
        last_connected_at: Optional[datetime] = None,
        last_disconnected_at: Optional[datetime] = None,
        id: Optional[UUID] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(id=id, created_at=created_at, updated_at=updated_at)
        self.channel_type = ChannelType(channel_type)
        self.external_id = external_id
        self.tenant_id = tenant_id
        self.credentials: Dict[str, Any] = dict(credentials or {})
        self.status = SessionStatus(status)
        self.rate_limit_class = rate_limit_class
        self.display_name = display_name
        self.phone_number = phone_number
        self.auto_reply_enabled = auto_reply_enabled
        self.last_connected_at = last_connected_at
        self.last_disconnected_at = last_disconnected_at

    @property
    def is_connected(self) -> bool:
        return self.status == SessionStatus.CONNECTED

    def credential(self, name: str) -> str:
        """Return a required credential or raise a permanent error (a resend cannot fix it)."""
        value = self.credentials.get(name)
        if not value:
            raise PermanentProviderError(
                f"Channel session is missing credential '{name}'",
                provider_code="missing_credential",
                details={"session_id": str(self.id), "credential": name},
            )
        return str(value)

    def mark_connected(self, phone_number: Optional[str] = None) -> bool:
        if phone_number:
            self.phone_number = phone_number
        if self.status == SessionStatus.CONNECTED:
            return False
        self.status = SessionStatus.CONNECTED
        self.last_connected_at = utcnow()
        self.mark_updated()
        return True

    def mark_disconnected(self) -> bool:
        if self.status == SessionStatus.DISCONNECTED:
            return False
        self.status = SessionStatus.DISCONNECTED
        self.last_disconnected_at = utcnow()
        self.mark_updated()
        return True

    def mark_expired(self) -> bool:
        if self.status == SessionStatus.EXPIRED:
            return False
        was_connected = self.is_connected
        self.status = SessionStatus.EXPIRED
        if was_connected:
            self.last_disconnected_at = utcnow()
        self.mark_updated()
        return True

    def mark_connecting(self) -> bool:
        if self.status == SessionStatus.CONNECTING:
            return False
        self.status = SessionStatus.CONNECTING
        self.mark_updated()
        return True

    def apply_status(self, status: SessionStatus, phone_number: Optional[str] = None) -> bool:
        """Apply a provider-reported status. Returns True when the status changed."""
        if status == SessionStatus.CONNECTED:
            return self.mark_connected(phone_number)
        if status == SessionStatus.DISCONNECTED:
            return self.mark_disconnected()
        if status == SessionStatus.EXPIRED:
            return self.mark_expired()
        return self.mark_connecting()
