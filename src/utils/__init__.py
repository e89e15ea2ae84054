from .logger import setup_logging
from .error_handlers import (
    ErrorSeverity,
    InterviewError,
    SessionNotFoundError,
    CandidateNotFoundError,
    QuestionNotFoundError,
    InvalidTransitionError,
    GatewayError,
    MalformedResponseError,
    UnsupportedFormatError,
    ResumeParseError,
    api_retry_handler,
    timeout_handler,
)

__all__ = [
    # logger.py
    'setup_logging',

    # error_handlers.py
    'ErrorSeverity',
    'InterviewError',
    'SessionNotFoundError',
    'CandidateNotFoundError',
    'QuestionNotFoundError',
    'InvalidTransitionError',
    'GatewayError',
    'MalformedResponseError',
    'UnsupportedFormatError',
    'ResumeParseError',
    'api_retry_handler',
    'timeout_handler',
]
