"""Channel-specific domain exceptions."""

from typing import Any, Dict, Optional

from src.shared.exceptions import DomainError, ForbiddenError, NotFoundError


class ProviderError(DomainError):
    """Base class for failures reported by (or while reaching) a channel provider."""

    code = "provider_error"
    retryable: bool = False

    def __init__(
        self,
        message: str = "",
        *,
        provider_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.provider_code = provider_code


class TransientProviderError(ProviderError):
    """Network errors, timeouts, HTTP 5xx and 429. Retried with backoff."""

    code = "provider_transient"
    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str = "",
        *,
        provider_code: Optional[str] = None,
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider_code=provider_code, details=details)
        self.retry_after = retry_after


class PermanentProviderError(ProviderError):
    """Invalid recipient, revoked credential, rejected payload. Never retried."""

    code = "provider_permanent"
    status_code = 422


class RateLimitTimeoutError(TransientProviderError):
    """No send slot became available within the acquire timeout."""

    code = "rate_limit_timeout"
    status_code = 503


class SignatureVerificationFailed(ForbiddenError):
    code = "invalid_signature"


class SessionNotFoundError(NotFoundError):
    code = "session_not_found"
