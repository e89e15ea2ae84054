"""
Interview State Management - Session State Store and Persistence

The store keeps normalized tables of candidates, sessions, questions and
chat transcripts, keyed by id. Entities reference each other by id only;
nothing is embedded, so there is a single source of truth for every record.

The store does no I/O. `StateManager` writes one JSON file per session so
that an interrupted interview can continue where it stopped.
"""

import json
import asyncio
from pathlib import Path
from typing import Optional, Dict, Any, List
from datetime import datetime

from pydantic import BaseModel, Field
from loguru import logger

from src.orchestrator.schema import (
    Candidate,
    CandidateStatus,
    ChatMessage,
    Evaluation,
    InterviewQuestion,
    InterviewSession,
    QuestionStatus,
    ResumeMetadata,
    SessionStatus,
    TERMINAL_QUESTION_STATES,
)
from src.utils.error_handlers import (
    CandidateNotFoundError,
    InvalidTransitionError,
    QuestionNotFoundError,
    SessionNotFoundError,
)


class SessionSnapshot(BaseModel):
    """Everything that belongs to one session, as written to disk."""
    session: InterviewSession
    candidate: Candidate
    questions: List[InterviewQuestion] = Field(default_factory=list)
    messages: List[ChatMessage] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=datetime.now)


class SessionStore:
    """
    In-memory tables for candidates, sessions, questions and messages.

    Every mutation goes through a method that keeps the invariants:
    at most one active question per session, the current question always
    refers to that active question, and resolved questions stay resolved.
    """

    def __init__(self):
        self.candidates: Dict[str, Candidate] = {}
        self.sessions: Dict[str, InterviewSession] = {}
        self.questions: Dict[str, InterviewQuestion] = {}
        self.threads: Dict[str, List[ChatMessage]] = {}

    # --- Lookups ---

    def find_candidate(self, candidate_id: str) -> Optional[Candidate]:
        return self.candidates.get(candidate_id)

    def find_session(self, session_id: str) -> Optional[InterviewSession]:
        return self.sessions.get(session_id)

    def find_question(self, question_id: str) -> Optional[InterviewQuestion]:
        return self.questions.get(question_id)

    def get_candidate(self, candidate_id: str) -> Candidate:
        candidate = self.candidates.get(candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(candidate_id)
        return candidate

    def get_session(self, session_id: str) -> InterviewSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_question(self, question_id: str) -> InterviewQuestion:
        question = self.questions.get(question_id)
        if question is None:
            raise QuestionNotFoundError(question_id)
        return question

    def session_questions(self, session_id: str) -> List[InterviewQuestion]:
        """Questions of a session in presentation order."""
        session = self.get_session(session_id)
        return [self.questions[qid] for qid in session.question_ids if qid in self.questions]

    def active_questions(self, session_id: str) -> List[InterviewQuestion]:
        return [q for q in self.session_questions(session_id) if q.status == QuestionStatus.ACTIVE]

    def current_question(self, session_id: str) -> Optional[InterviewQuestion]:
        session = self.get_session(session_id)
        if not session.current_question_id:
            return None
        return self.questions.get(session.current_question_id)

    def list_sessions(self) -> List[InterviewSession]:
        return sorted(self.sessions.values(), key=lambda s: s.updated_at, reverse=True)

    # --- Candidates ---

    def upsert_candidate(self, candidate: Candidate) -> Candidate:
        self.candidates[candidate.id] = candidate
        logger.debug(f"Candidate stored: {candidate.id}")
        return candidate

    def update_candidate_status(self, candidate_id: str, status: CandidateStatus, at: Optional[datetime] = None):
        candidate = self.get_candidate(candidate_id)
        at = at or datetime.now()
        candidate.status = status
        candidate.updated_at = at
        candidate.last_active_at = at

    def update_candidate_score(self, candidate_id: str, score: int, summary: Optional[str] = None,
                               at: Optional[datetime] = None):
        candidate = self.get_candidate(candidate_id)
        candidate.score = max(0, min(100, int(score)))
        candidate.summary = summary if summary is not None else candidate.summary
        candidate.updated_at = at or datetime.now()

    def update_candidate_contact(self, candidate_id: str, at: Optional[datetime] = None, **fields: Optional[str]):
        """Set any of name/email/phone/role. The caller decides what may be overwritten."""
        candidate = self.get_candidate(candidate_id)
        for key, value in fields.items():
            if key not in ("name", "email", "phone", "role"):
                raise ValueError(f"Unknown contact field: {key}")
            setattr(candidate, key, value)
        candidate.updated_at = at or datetime.now()

    def update_candidate_resume(self, candidate_id: str, resume: ResumeMetadata, at: Optional[datetime] = None):
        candidate = self.get_candidate(candidate_id)
        candidate.resume = resume
        candidate.updated_at = at or resume.uploaded_at

    # --- Sessions ---

    def create_session(self, candidate_id: str, status: SessionStatus = SessionStatus.NOT_STARTED) -> InterviewSession:
        self.get_candidate(candidate_id)
        session = InterviewSession(candidate_id=candidate_id, status=status)
        self.sessions[session.id] = session
        self.threads.setdefault(session.id, [])
        logger.debug(f"Session created: {session.id} (candidate {candidate_id})")
        return session

    def update_session_status(self, session_id: str, status: SessionStatus, at: Optional[datetime] = None):
        session = self.get_session(session_id)
        at = at or datetime.now()
        if session.status == SessionStatus.COMPLETED and status != SessionStatus.COMPLETED:
            raise InvalidTransitionError(f"Session {session_id} is completed and cannot become '{status.value}'")
        session.status = status
        session.updated_at = at
        if status == SessionStatus.COMPLETED:
            session.completed_at = at

    def mark_session_started(self, session_id: str, at: Optional[datetime] = None):
        session = self.get_session(session_id)
        at = at or datetime.now()
        if not session.started_at:
            session.started_at = at
        session.updated_at = at

    def set_current_question(self, session_id: str, question_id: Optional[str], at: Optional[datetime] = None):
        session = self.get_session(session_id)
        if question_id is not None:
            question = self.get_question(question_id)
            if question.session_id != session_id:
                raise InvalidTransitionError(f"Question {question_id} does not belong to session {session_id}")
            if question.status != QuestionStatus.ACTIVE:
                raise InvalidTransitionError(f"Question {question_id} is '{question.status.value}', not active")
        session.current_question_id = question_id
        session.updated_at = at or datetime.now()

    # --- Questions ---

    def add_question_to_session(self, question: InterviewQuestion) -> InterviewQuestion:
        session = self.get_session(question.session_id)
        if question.id in self.questions:
            raise InvalidTransitionError(f"Question {question.id} already exists")
        if question.order != len(session.question_ids):
            raise InvalidTransitionError(
                f"Question order {question.order} does not follow {len(session.question_ids)} asked questions"
            )
        if question.status == QuestionStatus.ACTIVE and self.active_questions(session.id):
            raise InvalidTransitionError(f"Session {session.id} already has an active question")

        self.questions[question.id] = question
        session.question_ids.append(question.id)
        session.updated_at = question.asked_at
        logger.debug(f"Question {question.order} ({question.difficulty.value}) added to {session.id}")
        return question

    def set_question_status(self, question_id: str, status: QuestionStatus):
        question = self.get_question(question_id)
        if question.status in TERMINAL_QUESTION_STATES:
            raise InvalidTransitionError(f"Question {question_id} is already '{question.status.value}'")
        if status == QuestionStatus.ACTIVE and question.status != QuestionStatus.ACTIVE:
            others = [q for q in self.active_questions(question.session_id) if q.id != question_id]
            if others:
                raise InvalidTransitionError(f"Session {question.session_id} already has an active question")
        if status == QuestionStatus.PENDING and question.status == QuestionStatus.ACTIVE:
            raise InvalidTransitionError(f"Question {question_id} cannot go back to pending")
        question.status = status

    def update_question_answer(self, question_id: str, answer: str, at: Optional[datetime] = None):
        question = self.get_question(question_id)
        question.answer = answer
        question.answered_at = at or datetime.now()

    def update_question_evaluation(self, question_id: str, score: int, reasoning: str):
        question = self.get_question(question_id)
        question.evaluation = Evaluation(score=max(0, min(100, int(score))), reasoning=reasoning)

    def decrement_question_timer(self, question_id: str) -> int:
        question = self.get_question(question_id)
        question.remaining_seconds = max(0, question.remaining_seconds - 1)
        return question.remaining_seconds

    # --- Transcript ---

    def append_message(self, session_id: str, role: str, content: str, **meta: Any) -> ChatMessage:
        self.get_session(session_id)
        message = ChatMessage(role=role, content=content, meta=meta)
        self.threads.setdefault(session_id, []).append(message)
        return message

    def get_thread(self, session_id: str) -> List[ChatMessage]:
        return list(self.threads.get(session_id, []))

    def replace_thread(self, session_id: str, messages: List[ChatMessage]):
        self.threads[session_id] = list(messages)

    def clear_thread(self, session_id: str):
        self.threads.pop(session_id, None)

    # --- Invariants ---

    def check_invariants(self, session_id: str) -> List[str]:
        """Return a description of every violated invariant (empty when consistent)."""
        session = self.get_session(session_id)
        problems = []
        questions = self.session_questions(session_id)

        active = [q for q in questions if q.status == QuestionStatus.ACTIVE]
        if len(active) > 1:
            problems.append(f"{len(active)} active questions")

        if session.current_question_id:
            current = self.questions.get(session.current_question_id)
            if current is None:
                problems.append("current question does not exist")
            elif current.session_id != session_id:
                problems.append("current question belongs to another session")
            elif current.status != QuestionStatus.ACTIVE:
                problems.append(f"current question is '{current.status.value}'")

        for index, question in enumerate(questions):
            if question.order != index:
                problems.append(f"question {question.id} has order {question.order} at position {index}")

        if session.status == SessionStatus.COMPLETED:
            if session.current_question_id:
                problems.append("completed session still has a current question")
            if any(not q.is_resolved for q in questions):
                problems.append("completed session has unresolved questions")

        return problems

    # --- Snapshots ---

    def snapshot(self, session_id: str) -> SessionSnapshot:
        session = self.get_session(session_id)
        return SessionSnapshot(
            session=session,
            candidate=self.get_candidate(session.candidate_id),
            questions=self.session_questions(session_id),
            messages=self.get_thread(session_id),
        )

    def restore(self, snapshot: SessionSnapshot) -> InterviewSession:
        """Load a snapshot into the tables, repairing a stale current question."""
        session = snapshot.session
        self.candidates[snapshot.candidate.id] = snapshot.candidate
        for question in snapshot.questions:
            self.questions[question.id] = question
        self.sessions[session.id] = session
        self.threads[session.id] = list(snapshot.messages)

        if session.current_question_id:
            current = self.questions.get(session.current_question_id)
            if current is None or current.session_id != session.id or current.status != QuestionStatus.ACTIVE:
                logger.warning(f"Stale current question cleared on restore: {session.current_question_id}")
                session.current_question_id = None
        return session


class StateManager:
    """
    Writes sessions to disk and reads them back.

    One JSON file per session; writes go to a temp file first and are
    then moved in place, so a crash never leaves half a file behind.
    """

    def __init__(self, store: SessionStore, state_dir: Path = Path("data/sessions")):
        self.store = store
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

        self.auto_save_interval = 30
        self._save_task: Optional[asyncio.Task] = None
        logger.info(f"State Manager started. Directory: {self.state_dir}")

    def _path_for(self, session_id: str) -> Path:
        return self.state_dir / f"{session_id}.json"

    def save_session(self, session_id: str):
        """Write the current state of one session to disk."""
        snapshot = self.store.snapshot(session_id)

        temp_file = self.state_dir / f"{session_id}.tmp"
        final_file = self._path_for(session_id)

        with open(temp_file, 'w', encoding='utf-8') as f:
            f.write(snapshot.model_dump_json(indent=2))
        temp_file.replace(final_file)
        logger.debug(f"State saved: {session_id}")

    def save_all(self):
        for session in list(self.store.sessions.values()):
            self.save_session(session.id)

    def load_session(self, session_id: str) -> Optional[InterviewSession]:
        """
        Load a previous session so the interview can continue.

        Returns None when no file exists for the id.
        """
        state_file = self._path_for(session_id)

        if not state_file.exists():
            logger.warning(f"Session file not found: {session_id}")
            return None

        with open(state_file, 'r', encoding='utf-8') as f:
            snapshot = SessionSnapshot.model_validate_json(f.read())

        session = self.store.restore(snapshot)
        logger.info(f"Session loaded: {session_id} ({session.status.value})")
        return session

    async def _auto_save_loop(self):
        """Save every open session at a fixed interval."""
        while True:
            await asyncio.sleep(self.auto_save_interval)
            for session in list(self.store.sessions.values()):
                if session.status == SessionStatus.IN_PROGRESS:
                    try:
                        self.save_session(session.id)
                    except OSError as e:
                        logger.error(f"Auto-save failed for {session.id}: {e}")

    def start_auto_save(self, interval: Optional[int] = None):
        if interval:
            self.auto_save_interval = interval
        if self._save_task is None or self._save_task.done():
            self._save_task = asyncio.create_task(self._auto_save_loop())

    def stop_auto_save(self):
        if self._save_task:
            self._save_task.cancel()
            self._save_task = None

    def get_recovery_info(self) -> list[Dict[str, Any]]:
        """
        List sessions that can be continued.

        Finds interviews that were not completed and returns a short
        description of each.
        """
        resumable = (
            SessionStatus.NOT_STARTED.value,
            SessionStatus.COLLECTING_INFO.value,
            SessionStatus.IN_PROGRESS.value,
            SessionStatus.PAUSED.value,
        )
        recovery_sessions = []

        for state_file in self.state_dir.glob("*.json"):
            try:
                with open(state_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)

                if data['session']['status'] in resumable:
                    recovery_sessions.append({
                        'session_id': data['session']['id'],
                        'candidate_name': data['candidate'].get('name') or "Unknown",
                        'status': data['session']['status'],
                        'questions_asked': len(data['session']['question_ids']),
                    })

            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Could not read session file: {state_file}, Error: {e}")

        return recovery_sessions

    def cleanup_old_sessions(self, days: int = 7) -> int:
        """
        Delete completed session files older than `days`.
        """
        cutoff_time = datetime.now().timestamp() - (days * 24 * 3600)
        cleaned_count = 0

        for state_file in self.state_dir.glob("*.json"):
            try:
                if state_file.stat().st_mtime < cutoff_time:
                    with open(state_file, 'r', encoding='utf-8') as f:
                        data = json.load(f)

                    if data['session']['status'] == SessionStatus.COMPLETED.value:
                        state_file.unlink()
                        cleaned_count += 1

            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Cleanup error: {state_file}, {e}")

        if cleaned_count > 0:
            logger.info(f"{cleaned_count} old session files removed")
        return cleaned_count
