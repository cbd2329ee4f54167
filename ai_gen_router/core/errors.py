"""
Backend errors and failure classification.

Every backend failure is classified exactly once, by a pure function, into
TERMINAL (the caller must fix the request or credentials) or RETRYABLE
(a transient condition where another tier is likely to succeed).
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .orchestrator import GenerationAttemptResult


class FailureClass(Enum):
    """How the orchestrator reacts to a backend failure."""
    TERMINAL = "terminal"    # Stop immediately, no fallback
    RETRYABLE = "retryable"  # Advance to the next tier in the chain


class ErrorKind(Enum):
    """Why a generation ended without content."""
    TERMINAL = "terminal"    # One tier failed with a terminal error
    EXHAUSTED = "exhausted"  # Every tier in the chain failed retryably


TERMINAL_STATUS_CODES = frozenset({400, 401, 403})
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

TERMINAL_CODES = frozenset({"content_policy_violation", "missing_usage"})
RETRYABLE_CODES = frozenset({"model_not_found", "timeout", "connection_error", "empty_response"})

CONTENT_POLICY_MARKERS = ("content policy", "content_policy", "safety system")
TIMEOUT_MARKERS = ("timeout", "timed out")


class BackendError(Exception):
    """Structured failure raised by a generation backend.

    Token counts are set when the backend reported usage for the failed
    request, so the attempt can still be costed.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens

    def __repr__(self) -> str:
        return (
            f"BackendError(message={self.message!r}, status_code={self.status_code!r}, "
            f"code={self.code!r})"
        )


def classify_failure(error: BackendError) -> FailureClass:
    """Classify a backend failure as terminal or retryable.

    Terminal signals are checked before retryable ones, and anything
    unrecognised is terminal.

    Args:
        error: Failure reported by the backend

    Returns:
        FailureClass for the error
    """
    message = (error.message or "").lower()
    code = (error.code or "").lower()

    if error.status_code in TERMINAL_STATUS_CODES:
        return FailureClass.TERMINAL
    if code in TERMINAL_CODES or any(marker in message for marker in CONTENT_POLICY_MARKERS):
        return FailureClass.TERMINAL

    if error.status_code in RETRYABLE_STATUS_CODES:
        return FailureClass.RETRYABLE
    if code in RETRYABLE_CODES:
        return FailureClass.RETRYABLE
    if any(marker in message for marker in TIMEOUT_MARKERS):
        return FailureClass.RETRYABLE

    return FailureClass.TERMINAL


class GenerationError(Exception):
    """Raised when the orchestrator ends without content.

    Attributes:
        result: Failed result describing what actually executed
        cause: Last backend error seen
    """

    def __init__(self, message: str, result: "GenerationAttemptResult", cause: BackendError):
        super().__init__(message)
        self.result = result
        self.cause = cause


class TerminalGenerationError(GenerationError):
    """A tier failed with a terminal error; no fallback was attempted."""


class FallbackExhaustedError(GenerationError):
    """Every tier in the fallback chain failed with a retryable error."""
