import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def new_id() -> str:
    return uuid.uuid4().hex


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ANSWERED = "answered"
    SKIPPED = "skipped"


TERMINAL_QUESTION_STATES = (QuestionStatus.ANSWERED, QuestionStatus.SKIPPED)


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    COLLECTING_INFO = "collecting_info"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class CandidateStatus(str, Enum):
    NEW = "new"
    COLLECTING_INFO = "collecting_info"
    INTERVIEWING = "interviewing"
    PAUSED = "paused"
    COMPLETED = "completed"


class ResumeMetadata(BaseModel):
    file_name: str
    file_type: str
    size: int = 0
    uploaded_at: datetime = Field(default_factory=datetime.now)
    parsed_text: Optional[str] = None


class Candidate(BaseModel):
    id: str = Field(default_factory=new_id)
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    status: CandidateStatus = CandidateStatus.NEW
    score: Optional[int] = Field(default=None, ge=0, le=100)
    summary: Optional[str] = None
    resume: Optional[ResumeMetadata] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    last_active_at: Optional[datetime] = None

    @property
    def has_resume_text(self) -> bool:
        return bool(self.resume and self.resume.parsed_text)


class InterviewSession(BaseModel):
    """
    The state of one interview.

    `question_ids` is append-only and defines the presentation order.
    `current_question_id`, when set, always points at the single active
    question of this session.
    """
    id: str = Field(default_factory=new_id)
    candidate_id: str
    status: SessionStatus = SessionStatus.NOT_STARTED
    question_ids: List[str] = Field(default_factory=list)
    current_question_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.now)


class Evaluation(BaseModel):
    score: int = Field(..., ge=0, le=100)
    reasoning: str = ""


class InterviewQuestion(BaseModel):
    id: str = Field(default_factory=new_id)
    session_id: str
    order: int = Field(..., ge=0)
    difficulty: Difficulty
    prompt: str
    answer_guidance: Optional[str] = None
    timer_seconds: int = Field(..., gt=0)
    remaining_seconds: int = Field(..., ge=0)
    status: QuestionStatus = QuestionStatus.ACTIVE
    answer: Optional[str] = None
    answered_at: Optional[datetime] = None
    asked_at: datetime = Field(default_factory=datetime.now)
    evaluation: Optional[Evaluation] = None

    @property
    def is_resolved(self) -> bool:
        return self.status in TERMINAL_QUESTION_STATES


class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    role: Literal["system", "assistant", "user"]
    content: str
    created_at: datetime = Field(default_factory=datetime.now)
    meta: Dict[str, Any] = Field(default_factory=dict)


# --- Gateway contract payloads ---

class CandidateProfile(BaseModel):
    """What the question generator may know about the candidate."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    resume_text: Optional[str] = None


class PreviousQuestion(BaseModel):
    """Only the prompt and the difficulty, never answers or scores."""
    prompt: str
    difficulty: Difficulty


class QuestionForEvaluation(BaseModel):
    prompt: str
    difficulty: Difficulty
    prior_guidance: Optional[str] = None


class AnsweredQuestion(BaseModel):
    prompt: str
    difficulty: Difficulty
    answer: Optional[str] = None
    evaluation: Optional[Evaluation] = None


class QuestionResult(BaseModel):
    question: str = Field(..., min_length=1)
    answer_guidance: str

    @field_validator("question", mode="before")
    @classmethod
    def strip_question(cls, v: Any) -> Any:
        # min_length then rejects a blank prompt
        return v.strip() if isinstance(v, str) else v


class EvaluationResult(BaseModel):
    score: int
    feedback: str

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        # bool is an int subclass; a true/false score is not a score
        if isinstance(v, bool):
            raise ValueError("score must be a number")
        if isinstance(v, str):
            v = float(v.strip())
        if not isinstance(v, (int, float)):
            raise ValueError("score must be a number")
        return max(0, min(100, int(round(v))))


class SummaryResult(BaseModel):
    summary: str = Field(..., min_length=1)
    generated_at: datetime = Field(default_factory=datetime.now)
