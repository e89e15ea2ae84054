from .schema import (
    Candidate,
    CandidateStatus,
    ChatMessage,
    Difficulty,
    InterviewQuestion,
    InterviewSession,
    QuestionStatus,
    ResumeMetadata,
    SessionStatus,
)
from .state_manager import SessionStore, StateManager, SessionSnapshot
from .gateway import InterviewGateway
from .orchestrator import InterviewOrchestrator, missing_candidate_fields
from .timer import TimerDriver


__all__ = [
    'Candidate',
    'CandidateStatus',
    'ChatMessage',
    'Difficulty',
    'InterviewQuestion',
    'InterviewSession',
    'QuestionStatus',
    'ResumeMetadata',
    'SessionStatus',
    'SessionStore',
    'StateManager',
    'SessionSnapshot',
    'InterviewGateway',
    'InterviewOrchestrator',
    'missing_candidate_fields',
    'TimerDriver',
]
