"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). This is the base class - DON'T raise it directly! Always use a specific
    # subclass so callers (and the HTTP exception handlers) can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundError(DomainException):
    """Raised when an entity (or a cover image / provider match) is not found.

    HTTP Status: 404
    """

    # Yo, entity_type and entity_id are kept separately so error handlers can log them
    # structured. Pass a custom message for "no cover art for album 12" style errors where
    # the entity exists but the thing the caller asked for does not.
    def __init__(
        self, entity_type: str, entity_id: Any, message: str | None = None
    ) -> None:
        super().__init__(message or f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateEntityError(DomainException):
    """Raised when trying to create a duplicate entity.

    HTTP Status: 409 (Conflict)
    """

    # Listen, the store's unique constraint is the source of truth for "already owned". The
    # collection service translates the IntegrityError into this - it never retries the insert.
    def __init__(self, entity_type: str, entity_id: Any, message: str | None = None) -> None:
        super().__init__(message or f"{entity_type} with id {entity_id} already exists")
        self.entity_type = entity_type
        self.entity_id = entity_id


# Alias matching the error taxonomy used by the request layer
ConflictError = DuplicateEntityError


class ValidationError(DomainException):
    """Input validation failed.

    HTTP Status: 422

    Example:
        raise ValidationError("Search query is required")
        raise ValidationError("Image data is not a decodable image")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)
    """

    pass


class ExternalServiceError(DomainException):
    """External provider (Discogs, MusicBrainz, vision APIs) failed.

    HTTP Status: 502 (Bad Gateway)
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderUnavailableError(ExternalServiceError):
    """Provider has no credentials or is administratively disabled.

    Hey future me - search/artwork call sites never see this, clients degrade to
    an empty result instead. It only escapes where the operation is meaningless
    without a provider (image analysis with zero vision providers).

    HTTP Status: 503
    """

    pass


class ProviderTimeoutError(ExternalServiceError):
    """Provider did not answer within the fixed outbound timeout.

    HTTP Status: 504
    """

    pass


class ProviderParseError(ExternalServiceError):
    """Provider answered but the content could not be parsed.

    Fatal for that single provider call, never for the whole request.

    HTTP Status: 502
    """

    pass


__all__ = [
    "DomainException",
    "EntityNotFoundError",
    "DuplicateEntityError",
    "ConflictError",
    "ValidationError",
    "ConfigurationError",
    "ExternalServiceError",
    "ProviderUnavailableError",
    "ProviderTimeoutError",
    "ProviderParseError",
]
