"""Tests for the generation failure taxonomy."""

from __future__ import annotations

import asyncio

import anthropic
import httpx
import pytest

from src.generation.errors import (
    GenerationError,
    InvalidRequestError,
    RateLimitedError,
    ServiceUnavailableError,
    TransientNetworkError,
    classify_error,
)

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def status_error(cls: type[anthropic.APIStatusError], status: int) -> anthropic.APIStatusError:
    response = httpx.Response(status, request=REQUEST)
    return cls(f"status {status}", response=response, body=None)


class TestClassifyError:
    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (status_error(anthropic.RateLimitError, 429), RateLimitedError),
            (status_error(anthropic.AuthenticationError, 401), InvalidRequestError),
            (status_error(anthropic.PermissionDeniedError, 403), InvalidRequestError),
            (status_error(anthropic.BadRequestError, 400), InvalidRequestError),
            (status_error(anthropic.NotFoundError, 404), InvalidRequestError),
            (status_error(anthropic.InternalServerError, 500), ServiceUnavailableError),
            (status_error(anthropic.APIStatusError, 529), ServiceUnavailableError),
            (anthropic.APIConnectionError(request=REQUEST), TransientNetworkError),
            (anthropic.APITimeoutError(request=REQUEST), TransientNetworkError),
            (asyncio.TimeoutError(), TransientNetworkError),
            (ConnectionResetError("reset"), TransientNetworkError),
            (RuntimeError("something odd"), TransientNetworkError),
            (ValueError("bad block"), InvalidRequestError),
        ],
    )
    def test_mapping(self, exc: Exception, expected: type[GenerationError]) -> None:
        error = classify_error(exc)
        assert type(error) is expected
        assert error.__cause__ is exc

    def test_generation_errors_pass_through(self) -> None:
        error = ServiceUnavailableError("scheduler reset")
        assert classify_error(error) is error

    def test_message_falls_back_to_type_name(self) -> None:
        assert classify_error(RuntimeError()).message == "RuntimeError"


class TestRetryFlags:
    def test_retryable_kinds(self) -> None:
        for cls in (RateLimitedError, TransientNetworkError, ServiceUnavailableError):
            error = cls("x")
            assert error.retryable is True
            assert error.permanent is False

    def test_invalid_request_is_permanent(self) -> None:
        error = InvalidRequestError("x")
        assert error.retryable is False
        assert error.permanent is True
