import asyncio
from enum import Enum
from functools import wraps
from typing import Coroutine, Any

import aiohttp
from loguru import logger
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

# --- Error and severity classes ---

class ErrorSeverity(str, Enum):
    """How serious an error is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    FATAL = "fatal"

class InterviewError(Exception):
    """Base error of the interview engine."""
    def __init__(self, message, severity=ErrorSeverity.MEDIUM, recoverable=False, recovery_suggestion=""):
        super().__init__(message)
        self.severity = severity
        self.recoverable = recoverable
        self.recovery_suggestion = recovery_suggestion

    def __str__(self):
        return f"[{self.severity.value.upper()}] {super().__str__()}"

# Precondition violations: caller errors, always raised

class SessionNotFoundError(InterviewError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", severity=ErrorSeverity.HIGH)
        self.session_id = session_id

class CandidateNotFoundError(InterviewError):
    def __init__(self, candidate_id: str):
        super().__init__(f"Candidate not found: {candidate_id}", severity=ErrorSeverity.HIGH)
        self.candidate_id = candidate_id

class QuestionNotFoundError(InterviewError):
    def __init__(self, question_id: str):
        super().__init__(f"Question not found: {question_id}", severity=ErrorSeverity.HIGH)
        self.question_id = question_id

class InvalidTransitionError(InterviewError):
    """A store mutation would break a state machine or an invariant."""
    def __init__(self, message):
        super().__init__(message, severity=ErrorSeverity.HIGH)

# Gateway failures

class GatewayError(InterviewError):
    """The LLM service could not produce a result."""
    def __init__(self, message, status: int | None = None):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            recovery_suggestion="Retry the command in a moment.",
        )
        self.status = status

class MalformedResponseError(GatewayError):
    """The LLM answered, but not with the JSON we asked for."""

# Resume intake

class UnsupportedFormatError(InterviewError):
    def __init__(self, file_name: str):
        super().__init__(
            f"Unsupported file type: {file_name}. Please upload a PDF or DOCX resume.",
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_suggestion="Upload a PDF or DOCX file, or type your details in the chat.",
        )
        self.file_name = file_name

class ResumeParseError(InterviewError):
    def __init__(self, message):
        super().__init__(message, severity=ErrorSeverity.LOW, recoverable=True)

# --- Decorators and helpers ---

def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (aiohttp.ClientConnectionError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, GatewayError) and exc.status is not None:
        return exc.status == 429 or exc.status >= 500
    return False

def api_retry_handler(attempts: int = 3):
    """
    Retry decorator for HTTP calls to the LLM service.

    Only transport failures (connection errors, timeouts, 429/5xx) are
    retried. A malformed answer is never retried here.
    """
    def decorator(func: Coroutine) -> Coroutine:
        @wraps(func)
        @retry(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True  # after the last attempt, raise the original error
        )
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"API call failed: {func.__name__}, Error: {str(e)}")
                raise
        return wrapper
    return decorator

def timeout_handler(seconds: int, message: str):
    """Forces a coroutine to finish within a deadline."""
    def decorator(func: Coroutine) -> Coroutine:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=seconds)
            except asyncio.TimeoutError:
                raise InterviewError(f"{message} ({seconds}s timeout)", severity=ErrorSeverity.HIGH, recoverable=True)
        return wrapper
    return decorator
