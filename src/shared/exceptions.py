"""
Error hierarchy shared by every context, and the FastAPI handlers that turn
it into the ``{code, message, details?, correlation_id?}`` response body.

Services raise ``DomainError`` subclasses and never ``HTTPException``. A
subclass that only sets ``code`` takes its HTTP status and default message
from ``ERROR_CODES``.
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from src.shared.error_codes import ERROR_CODES
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


def status_for(code: str, default: int = 500) -> int:
    return int(ERROR_CODES.get(code, {}).get("http", default))


def message_for(code: str) -> str:
    return str(ERROR_CODES.get(code, {}).get("message", code))


class DomainError(Exception):
    code: str = "domain_error"
    status_code: int = 400

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "status_code" not in cls.__dict__ and cls.code in ERROR_CODES:
            cls.status_code = status_for(cls.code)

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.message = message or (message_for(self.code) if self.code in ERROR_CODES else self.__class__.__name__)
        self.details = details
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "validation_error"


class ForbiddenError(DomainError):
    code = "forbidden"
    status_code = 403


class NotFoundError(DomainError):
    code = "not_found"


class ConflictError(DomainError):
    code = "conflict"


class CryptoError(DomainError):
    code = "crypto_error"


def error_body(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    if correlation_id:
        body["correlation_id"] = correlation_id
    return body


def _correlation_id(req: Request) -> Optional[str]:
    return getattr(req.state, "request_id", None)


def _validation_response(req: Request, errors: list) -> JSONResponse:
    code = "validation_error"
    return JSONResponse(
        status_code=status_for(code),
        content=error_body(code, message_for(code), {"errors": jsonable_encoder(errors)}, _correlation_id(req)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def handle_domain_error(req: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error("Request failed", extra={"code": exc.code, "error": exc.message, "path": req.url.path})
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.details, _correlation_id(req)),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(req: Request, exc: RequestValidationError):
        return _validation_response(req, list(exc.errors()))

    @app.exception_handler(PydanticValidationError)
    async def handle_pydantic_validation(req: Request, exc: PydanticValidationError):
        return _validation_response(req, exc.errors(include_url=False))

    @app.exception_handler(HTTPException)
    async def handle_http_exception(req: Request, exc: HTTPException):
        # first code registered for the status wins
        code = next((k for k, v in ERROR_CODES.items() if v["http"] == exc.status_code), "internal_error")
        detail = exc.detail
        message = detail if isinstance(detail, str) else message_for(code)
        details = detail if isinstance(detail, dict) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, message, details, _correlation_id(req)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(req: Request, exc: Exception):
        logger.exception("Unhandled error", extra={"path": req.url.path, "type": exc.__class__.__name__})
        code = "internal_error"
        return JSONResponse(
            status_code=status_for(code),
            content=error_body(code, message_for(code), {"type": exc.__class__.__name__}, _correlation_id(req)),
        )
