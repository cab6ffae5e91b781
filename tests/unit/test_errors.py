"""Tests for error classification."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from cuesync.errors import (
    ErrorKind,
    ErrorSeverity,
    MissingCredentialError,
    ProviderError,
    classify_error,
)
from cuesync.resilience.circuit_breaker import CircuitBreakerError, CircuitState


class TestClassifyError:
    """Test suite for classify_error."""

    def test_missing_credential_is_critical(self) -> None:
        error = classify_error(MissingCredentialError("claude", "CLAUDE_API_KEY"))

        assert error.kind is ErrorKind.API_ERROR
        assert error.severity is ErrorSeverity.CRITICAL
        assert not error.recoverable
        assert "CLAUDE_API_KEY" in error.message

    def test_unauthorized_provider_error(self) -> None:
        error = classify_error(ProviderError("denied", status_code=401, unauthorized=True))

        assert error.severity is ErrorSeverity.HIGH
        assert not error.recoverable

    def test_provider_error_keeps_kind(self) -> None:
        error = classify_error(ProviderError("slow down", ErrorKind.RATE_LIMIT_ERROR, 429))

        assert error.kind is ErrorKind.RATE_LIMIT_ERROR
        assert error.severity is ErrorSeverity.MEDIUM
        assert error.recoverable

    @pytest.mark.parametrize(
        "exc",
        [TimeoutError(), asyncio.TimeoutError(), httpx.ReadTimeout("read timed out")],
    )
    def test_timeouts(self, exc: BaseException) -> None:
        error = classify_error(exc)

        assert error.kind is ErrorKind.TIMEOUT_ERROR
        assert error.recoverable

    def test_network_failures(self) -> None:
        assert classify_error(ConnectionResetError("reset")).kind is ErrorKind.NETWORK_ERROR
        assert classify_error(httpx.ConnectError("refused")).kind is ErrorKind.NETWORK_ERROR

    def test_open_circuit(self) -> None:
        error = classify_error(CircuitBreakerError("Circuit 'claude' is OPEN", CircuitState.OPEN))

        assert error.kind is ErrorKind.NETWORK_ERROR
        assert error.severity is ErrorSeverity.MEDIUM
        assert error.recoverable

    def test_open_circuit_keeps_cause_severity(self) -> None:
        """Test an open circuit reports the severity of the failure behind it."""
        cause = ProviderError("invalid api key", status_code=401, unauthorized=True)

        error = classify_error(
            CircuitBreakerError("Circuit 'gemini' is OPEN", CircuitState.OPEN, last_error=cause)
        )

        assert error.kind is ErrorKind.NETWORK_ERROR
        assert error.severity is ErrorSeverity.HIGH
        assert not error.recoverable

    @pytest.mark.parametrize(
        ("message", "kind"),
        [
            ("Rate limit reached", ErrorKind.RATE_LIMIT_ERROR),
            ("upstream timed out", ErrorKind.TIMEOUT_ERROR),
            ("Connection dropped", ErrorKind.NETWORK_ERROR),
            ("API returned garbage", ErrorKind.API_ERROR),
            ("the rapid tapir", ErrorKind.UNKNOWN_ERROR),
        ],
    )
    def test_message_keywords(self, message: str, kind: ErrorKind) -> None:
        """Test unstructured exceptions fall back to keyword matching."""
        assert classify_error(RuntimeError(message)).kind is kind

    def test_unauthorized_message(self) -> None:
        error = classify_error(RuntimeError("401 Unauthorized"))

        assert error.severity is ErrorSeverity.HIGH
        assert not error.recoverable

    def test_api_key_message_is_critical(self) -> None:
        error = classify_error(RuntimeError("invalid API key"))

        assert error.kind is ErrorKind.API_ERROR
        assert error.severity is ErrorSeverity.CRITICAL

    def test_empty_message_uses_class_name(self) -> None:
        error = classify_error(RuntimeError())

        assert error.message == "RuntimeError"
        assert error.kind is ErrorKind.UNKNOWN_ERROR
        assert error.recoverable
