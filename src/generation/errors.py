"""Failure taxonomy for calls to the text-generation service."""

from __future__ import annotations

import asyncio

import anthropic


class GenerationError(Exception):
    """Base class for generation failures surfaced to callers.

    ``retryable`` failures are retried by the scheduler; ``permanent`` ones
    (bad credentials, malformed requests) should prompt reconfiguration
    rather than another attempt.
    """

    retryable = True
    permanent = False

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = attempts


class RateLimitedError(GenerationError):
    """The remote service itself reported a rate limit."""


class TransientNetworkError(GenerationError):
    """Connection failures and timeouts."""


class ServiceUnavailableError(GenerationError):
    """5xx / overloaded responses from the service."""


class InvalidRequestError(GenerationError):
    """Requests the service will never accept; not retried."""

    retryable = False
    permanent = True


def classify_error(exc: BaseException) -> GenerationError:
    """Map an arbitrary exception from a generation call onto the taxonomy.

    Unknown exceptions are treated as transient so a single odd failure does
    not permanently disable summarization.
    """
    if isinstance(exc, GenerationError):
        return exc
    error = _classify(exc)
    error.__cause__ = exc
    return error


def _classify(exc: BaseException) -> GenerationError:
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__

    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitedError(message)
    if isinstance(exc, (anthropic.APIConnectionError, asyncio.TimeoutError, TimeoutError, ConnectionError)):
        # APITimeoutError subclasses APIConnectionError
        return TransientNetworkError(message)
    if isinstance(
        exc,
        (
            anthropic.AuthenticationError,
            anthropic.PermissionDeniedError,
            anthropic.BadRequestError,
            anthropic.NotFoundError,
            anthropic.UnprocessableEntityError,
        ),
    ):
        return InvalidRequestError(message)
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code >= 500:
            return ServiceUnavailableError(message)
        return InvalidRequestError(message)
    if isinstance(exc, (ValueError, TypeError)):
        return InvalidRequestError(message)
    return TransientNetworkError(message)
