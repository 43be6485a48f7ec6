"""
Channel adapter contract and the shared HTTP plumbing.

Adapters hide provider payload shapes, auth headers and media semantics.
``send`` either returns a DispatchResult or raises a classified
ProviderError; ``normalize_inbound`` never raises.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import httpx

from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.exceptions import PermanentProviderError, TransientProviderError
from src.channels.domain.value_objects import (
    ChannelType,
    DispatchResult,
    NormalizedItem,
    OutboundPayload,
    ParseError,
    RawWebhookRequest,
)
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class ChannelAdapter(ABC):
    """Uniform interface over one messaging provider."""

    channel_type: ChannelType

    @abstractmethod
    async def send(self, session: ChannelSession, recipient: str, payload: OutboundPayload) -> DispatchResult:
        """
        Deliver ``payload`` to ``recipient`` through ``session``.

        Raises:
            TransientProviderError: network failure, timeout, HTTP 5xx or 429
            PermanentProviderError: HTTP 4xx or provider-level rejection
        """
        ...

    @abstractmethod
    def normalize_inbound(self, payload: Any) -> List[NormalizedItem]:
        """Convert a decoded webhook body into canonical events. Never raises."""
        ...

    @abstractmethod
    def verify_signature(self, request: RawWebhookRequest, secret: Optional[str]) -> bool:
        """Constant-time authenticity check. Never raises."""
        ...

    def webhook_secret(self, session: Optional[ChannelSession]) -> Optional[str]:
        """Secret used to verify callbacks for ``session``."""
        return None

    def safe_normalize(self, payload: Any) -> List[NormalizedItem]:
        try:
            return self.normalize_inbound(payload)
        except Exception as e:  # adapters must not take the pipeline down
            logger.error(
                "Adapter raised while normalizing payload",
                extra={"channel_type": self.channel_type.value, "error": str(e)},
            )
            return [ParseError("normalizer_crashed", self.channel_type, str(e))]

    async def aclose(self) -> None:
        return None


class HttpChannelAdapter(ChannelAdapter):
    """
    Base for adapters that talk JSON over HTTP.

    Owns the POST, the timeout and the transient/permanent classification:
    network errors, timeouts, 429 and 5xx are transient; any other non-2xx
    is permanent.
    """

    def __init__(self, base_url: str, *, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout

    async def _post_json(
        self,
        url: str,
        body: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self.client.post(url, json=dict(body), headers=dict(headers or {}), timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.warning("Provider request timed out", extra={"channel_type": self.channel_type.value})
            raise TransientProviderError("Provider request timed out", provider_code="timeout") from e
        except httpx.HTTPError as e:
            logger.warning(
                "Provider request failed",
                extra={"channel_type": self.channel_type.value, "error": str(e)},
            )
            raise TransientProviderError(f"Provider unreachable: {e}", provider_code="network_error") from e

        data = self._decode(response)

        if response.status_code == 429 or response.status_code >= 500:
            code, message = self._error_detail(response, data)
            raise TransientProviderError(
                message or f"Provider returned HTTP {response.status_code}",
                provider_code=code or str(response.status_code),
                retry_after=self._retry_after(response, data),
            )
        if response.status_code >= 400:
            code, message = self._error_detail(response, data)
            raise PermanentProviderError(
                message or f"Provider rejected request with HTTP {response.status_code}",
                provider_code=code or str(response.status_code),
            )
        if data is None:
            raise PermanentProviderError("Provider returned a non-JSON response", provider_code="malformed_response")
        return data

    @staticmethod
    def _decode(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _error_detail(self, response: httpx.Response, data: Optional[Dict[str, Any]]) -> tuple[Optional[str], Optional[str]]:
        """Extract (provider_code, message) from an error body."""
        if not data:
            return None, None
        message = data.get("message") or data.get("error")
        return None, str(message) if message else None

    def _retry_after(self, response: httpx.Response, data: Optional[Dict[str, Any]]) -> Optional[float]:
        header = response.headers.get("retry-after")
        if header:
            try:
                return float(header)
            except ValueError:
                return None
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
