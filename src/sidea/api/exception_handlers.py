"""Exception handlers that turn domain errors into HTTP responses.

Hey future me - the engine itself never knows about HTTP. Whatever request layer hosts it
(a FastAPI app, most likely) calls register_exception_handlers(app) once at setup and every
domain error gets its status code here:

    EntityNotFoundError ........ 404
    DuplicateEntityError ....... 409  (already in collection)
    ValidationError ............ 422
    ConfigurationError ......... 503
    ProviderUnavailableError ... 503  (e.g. no vision key configured)
    ProviderTimeoutError ....... 504
    ExternalServiceError ....... 502  (also ProviderParseError)

Starlette picks the handler of the most specific class in the exception's MRO, so the
ExternalServiceError subclasses need their own registrations to get their own status.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from sidea.domain.exceptions import (
    ConfigurationError,
    DomainException,
    DuplicateEntityError,
    EntityNotFoundError,
    ExternalServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

HTTP_422 = 422


def _error_response(
    request: Request, exc: DomainException, status_code: int, level: int
) -> JSONResponse:
    logger.log(
        level,
        "%s at %s: %s",
        exc.__class__.__name__,
        request.url.path,
        exc.message,
        extra={"path": request.url.path, "error": exc.message, "status_code": status_code},
    )
    content: dict[str, str] = {"detail": exc.message}
    provider = getattr(exc, "provider", None)
    if provider:
        content["provider"] = provider
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for every domain exception.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(EntityNotFoundError)
    async def entity_not_found_handler(
        request: Request, exc: EntityNotFoundError
    ) -> JSONResponse:
        return _error_response(request, exc, status.HTTP_404_NOT_FOUND, logging.INFO)

    @app.exception_handler(DuplicateEntityError)
    async def duplicate_entity_handler(
        request: Request, exc: DuplicateEntityError
    ) -> JSONResponse:
        return _error_response(request, exc, status.HTTP_409_CONFLICT, logging.WARNING)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        return _error_response(request, exc, HTTP_422, logging.WARNING)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        return _error_response(
            request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, logging.ERROR
        )

    @app.exception_handler(ProviderUnavailableError)
    async def provider_unavailable_handler(
        request: Request, exc: ProviderUnavailableError
    ) -> JSONResponse:
        return _error_response(
            request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, logging.WARNING
        )

    @app.exception_handler(ProviderTimeoutError)
    async def provider_timeout_handler(
        request: Request, exc: ProviderTimeoutError
    ) -> JSONResponse:
        return _error_response(request, exc, status.HTTP_504_GATEWAY_TIMEOUT, logging.WARNING)

    @app.exception_handler(ExternalServiceError)
    async def external_service_error_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        return _error_response(request, exc, status.HTTP_502_BAD_GATEWAY, logging.ERROR)
