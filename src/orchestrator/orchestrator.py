"""
Interview Orchestrator

This module is the coordinator of a timed technical interview. It walks
a session through the fixed difficulty sequence, one active question at
a time, calls the LLM gateway to generate questions, grade answers and
summarize the interview, and writes every outcome to the session store.

Commands for one session never interleave: each one holds that session's
lock until it finishes, including the awaited gateway calls.
"""

import asyncio
import math
from datetime import datetime
from typing import Dict, List, Optional, Set

from loguru import logger

from config import config, InterviewConfig
from src.orchestrator.gateway import InterviewGateway
from src.orchestrator.schema import (
    AnsweredQuestion,
    Candidate,
    CandidateProfile,
    CandidateStatus,
    Difficulty,
    InterviewQuestion,
    InterviewSession,
    PreviousQuestion,
    QuestionForEvaluation,
    QuestionStatus,
    ResumeMetadata,
    SessionStatus,
)
from src.orchestrator.state_manager import SessionStore
from src.orchestrator.text_parser import extract_contact_details
from src.utils.error_handlers import InvalidTransitionError


QUESTION_ERROR_MESSAGE = "We hit a snag while generating the question. Please try again in a moment."
NEXT_QUESTION_ERROR_MESSAGE = "Unable to fetch the next question right now. Please retry in a moment."
EVALUATION_ERROR_MESSAGE = "Failed to score that answer. The interview will continue with the next question."
SUMMARY_ERROR_MESSAGE = "We could not generate the interview summary. Please retry in a moment."
COMPLETED_MESSAGE = "This interview is already complete. Feel free to review the summary above."


def missing_candidate_fields(candidate: Candidate) -> List[str]:
    """Fields the candidate still has to provide before the interview can start."""
    missing = []
    if not candidate.name:
        missing.append("name")
    if not candidate.email:
        missing.append("email")
    if not candidate.phone:
        missing.append("phone")
    if not candidate.has_resume_text:
        missing.append("resume")
    return missing


def round_score(value: float) -> int:
    """Round half up, so an average of 74.5 becomes 75."""
    return int(math.floor(value + 0.5))


class InterviewOrchestrator:
    """Drives interview sessions from creation to the final summary"""

    def __init__(
        self,
        store: SessionStore,
        gateway: InterviewGateway,
        settings: Optional[InterviewConfig] = None,
    ):
        """
        Args:
            store: Session state store shared with whoever renders the session.
            gateway: Question generation, answer evaluation and summary service.
            settings: Difficulty sequence and timers. Defaults to the global config.
        """
        settings = settings or config.interview

        self.store = store
        self.gateway = gateway

        self.difficulty_sequence = [Difficulty(d) for d in settings.difficulty_sequence]
        self.timer_by_difficulty = {Difficulty(k): v for k, v in settings.timer_by_difficulty.items()}
        self.default_role = settings.default_role
        self.max_resume_chars = settings.max_resume_chars

        self._locks: Dict[str, asyncio.Lock] = {}
        # Questions already submitted by the timeout path
        self._auto_submitted: Set[str] = set()

    @property
    def total_questions(self) -> int:
        return len(self.difficulty_sequence)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    # --- Session creation ---

    def open_session(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        role: Optional[str] = None,
        resume: Optional[ResumeMetadata] = None,
    ) -> InterviewSession:
        """Create a candidate and an empty session, and greet the candidate."""
        candidate = Candidate(
            name=name or None,
            email=email or None,
            phone=phone or None,
            role=role or self.default_role,
            status=CandidateStatus.COLLECTING_INFO,
            resume=self._trim_resume(resume) if resume else None,
        )
        self.store.upsert_candidate(candidate)
        session = self.store.create_session(candidate.id)

        greeting_name = f" {candidate.name}" if candidate.name else ""
        self.store.append_message(
            session.id,
            "system",
            f"Welcome{greeting_name}! When you're ready, start the interview to begin your session with Crisp.",
            type="greeting",
        )
        logger.info(f"New interview session opened: {session.id}")
        return session

    # --- Commands ---

    async def start_interview(self, session_id: str) -> Optional[InterviewQuestion]:
        """
        Begin (or continue) the interview and ask the next question.

        Returns the active question, or None when there is nothing left to ask.
        Raises whatever the gateway raised when the question cannot be generated.
        """
        async with self._lock_for(session_id):
            return await self._start_interview(session_id)

    async def submit_answer(
        self,
        session_id: str,
        answer: str,
        question_id: Optional[str] = None,
    ) -> Optional[InterviewQuestion]:
        """
        Resolve the active question with `answer` and move the interview on.

        When `question_id` is given, the answer only counts for that
        question; if another question is active by now, nothing is written.

        Returns the resolved question, or None when there was no matching
        active question to answer (a repeated or late submission).
        """
        async with self._lock_for(session_id):
            return await self._submit_answer(session_id, answer, question_id)

    async def tick(self, session_id: str) -> Optional[int]:
        """Take one second off the active question. Returns the seconds left, or None if nothing ticked."""
        async with self._lock_for(session_id):
            session = self.store.get_session(session_id)
            if session.status != SessionStatus.IN_PROGRESS:
                return None
            question = self.store.current_question(session_id)
            if question is None or question.status != QuestionStatus.ACTIVE:
                return None
            if question.remaining_seconds <= 0:
                return None
            return self.store.decrement_question_timer(question.id)

    async def expire_active_question(self, session_id: str, draft: str = "") -> Optional[InterviewQuestion]:
        """
        Submit the active question once its time is up.

        Runs at most once per question id, so a tick and a late user
        submission can never resolve the same question twice.
        """
        async with self._lock_for(session_id):
            session = self.store.get_session(session_id)
            if session.status != SessionStatus.IN_PROGRESS:
                return None
            question = self.store.current_question(session_id)
            if question is None or question.status != QuestionStatus.ACTIVE:
                return None
            if question.remaining_seconds > 0 or question.id in self._auto_submitted:
                return None

            self._auto_submitted.add(question.id)
            logger.bind(session_id=session_id).info(f"Time is up for question {question.order + 1}")
            return await self._submit_answer(session_id, draft, question.id)

    async def pause_interview(self, session_id: str):
        """Stop the clock. `start_interview` continues the session."""
        async with self._lock_for(session_id):
            session = self.store.get_session(session_id)
            if session.status != SessionStatus.IN_PROGRESS:
                raise InvalidTransitionError(f"Only an interview in progress can be paused (is '{session.status.value}')")
            now = datetime.now()
            self.store.update_session_status(session_id, SessionStatus.PAUSED, now)
            self.store.update_candidate_status(session.candidate_id, CandidateStatus.PAUSED, now)
            self.store.append_message(session_id, "system", "Interview paused. The timer is stopped.", type="pause")
            logger.bind(session_id=session_id).info("Interview paused")

    async def finalize_interview(self, session_id: str):
        """Summarize and score the interview once every question is resolved."""
        async with self._lock_for(session_id):
            await self._finalize(session_id)

    async def handle_chat_turn(
        self,
        session_id: str,
        message: str,
        resume: Optional[ResumeMetadata] = None,
        question_id: Optional[str] = None,
    ):
        """
        Handle a free-text message from the candidate.

        While a question is active the message is the answer (to
        `question_id` only, when given). Otherwise it is read for contact
        details, and the interview starts once nothing is missing.
        """
        async with self._lock_for(session_id):
            session = self.store.get_session(session_id)
            candidate = self.store.get_candidate(session.candidate_id)
            trimmed = (message or "").strip()

            current = self.store.current_question(session_id)
            has_active = current is not None and current.status == QuestionStatus.ACTIVE
            if question_id is not None and not (has_active and current.id == question_id):
                logger.bind(session_id=session_id).warning(
                    f"Answer for question {question_id} arrived after it was resolved, ignored"
                )
                return
            if has_active and session.status == SessionStatus.IN_PROGRESS:
                await self._submit_answer(session_id, trimmed, question_id)
                return

            if trimmed:
                self.store.append_message(session_id, "user", trimmed)
                self._fill_missing_contact(candidate, trimmed)

            if resume is not None and not candidate.has_resume_text:
                self.store.update_candidate_resume(candidate.id, self._trim_resume(resume))

            missing = missing_candidate_fields(candidate)
            if missing:
                self.store.append_message(
                    session_id,
                    "assistant",
                    f"Thanks! I still need your {', '.join(missing)} before we start. Please provide them here.",
                    type="intake",
                    missing=missing,
                )
                return

            if session.status == SessionStatus.COMPLETED:
                self.store.update_candidate_status(candidate.id, CandidateStatus.COMPLETED)
                self.store.append_message(session_id, "assistant", COMPLETED_MESSAGE)
                return

            upcoming = CandidateStatus.INTERVIEWING if session.question_ids else CandidateStatus.COLLECTING_INFO
            self.store.update_candidate_status(candidate.id, upcoming)

            questions = self.store.session_questions(session_id)
            if len(questions) >= self.total_questions and all(q.is_resolved for q in questions):
                # The summary failed earlier; this turn retries it
                await self._finalize(session_id)
                return

            if not questions or session.status != SessionStatus.IN_PROGRESS or not has_active:
                await self._start_interview(session_id)

    # --- Command bodies (caller holds the session lock) ---

    async def _start_interview(self, session_id: str) -> Optional[InterviewQuestion]:
        session = self.store.get_session(session_id)
        candidate = self.store.get_candidate(session.candidate_id)
        log = logger.bind(session_id=session_id)

        if session.status == SessionStatus.COMPLETED:
            log.info("Interview already completed, nothing to start")
            return None

        now = datetime.now()
        current = self.store.current_question(session_id)
        if current is not None and current.status == QuestionStatus.ACTIVE:
            # Continuing a paused interview: the active question keeps its clock
            if session.status != SessionStatus.IN_PROGRESS:
                self.store.update_session_status(session_id, SessionStatus.IN_PROGRESS, now)
                self.store.update_candidate_status(candidate.id, CandidateStatus.INTERVIEWING, now)
                log.info(f"Interview resumed at question {current.order + 1}")
            return current

        asked = len(session.question_ids)
        if asked >= self.total_questions:
            log.info(f"All {self.total_questions} questions already asked, not starting another")
            return None

        self.store.update_session_status(session_id, SessionStatus.IN_PROGRESS, now)
        self.store.mark_session_started(session_id, now)
        self.store.update_candidate_status(candidate.id, CandidateStatus.INTERVIEWING, now)

        return await self._ask_question(session, candidate, asked, QUESTION_ERROR_MESSAGE)

    async def _ask_question(
        self,
        session: InterviewSession,
        candidate: Candidate,
        order: int,
        error_message: str,
    ) -> InterviewQuestion:
        """Generate the question at position `order` and make it the active one."""
        log = logger.bind(session_id=session.id)
        difficulty = self.difficulty_sequence[order]
        previous = [
            PreviousQuestion(prompt=q.prompt, difficulty=q.difficulty)
            for q in self.store.session_questions(session.id)
        ]

        log.info(f"Generating question {order + 1}/{self.total_questions} ({difficulty.value})")
        try:
            result = await self.gateway.generate_question(difficulty, self._profile(candidate), previous)
        except Exception as e:
            log.error(f"Question generation failed: {e}")
            self.store.append_message(session.id, "system", error_message, type="error", error=str(e))
            raise

        now = datetime.now()
        timer = self.timer_by_difficulty[difficulty]
        question = InterviewQuestion(
            session_id=session.id,
            order=order,
            difficulty=difficulty,
            prompt=result.question,
            answer_guidance=result.answer_guidance,
            timer_seconds=timer,
            remaining_seconds=timer,
            status=QuestionStatus.ACTIVE,
            asked_at=now,
        )
        self.store.add_question_to_session(question)
        self.store.set_current_question(session.id, question.id, now)
        self.store.append_message(
            session.id,
            "assistant",
            result.question,
            type="question",
            question_id=question.id,
            difficulty=difficulty.value,
            recommended_answer=result.answer_guidance,
        )
        log.success(f"Question {order + 1} is active ({timer}s)")
        return question

    async def _submit_answer(
        self,
        session_id: str,
        answer: str,
        question_id: Optional[str] = None,
    ) -> Optional[InterviewQuestion]:
        session = self.store.get_session(session_id)
        candidate = self.store.get_candidate(session.candidate_id)
        log = logger.bind(session_id=session_id)
        answer = answer or ""

        question = self.store.current_question(session_id)
        if question is None or question.status != QuestionStatus.ACTIVE:
            log.warning("No active question, submission ignored")
            return None
        if question_id is not None and question_id != question.id:
            log.warning(f"Answer for question {question_id} arrived after it was resolved, ignored")
            return None

        now = datetime.now()
        self.store.append_message(session_id, "user", answer, question_id=question.id)
        self.store.update_question_answer(question.id, answer, now)
        status = QuestionStatus.ANSWERED if answer.strip() else QuestionStatus.SKIPPED
        self.store.set_question_status(question.id, status)
        self.store.set_current_question(session_id, None, now)
        log.info(f"Question {question.order + 1} {status.value}")

        await self._evaluate(session_id, question, answer)

        position = session.question_ids.index(question.id)
        remaining = self.total_questions - (position + 1)
        if remaining <= 0:
            await self._finalize(session_id)
            return question

        await self._ask_question(session, candidate, position + 1, NEXT_QUESTION_ERROR_MESSAGE)
        return question

    async def _evaluate(self, session_id: str, question: InterviewQuestion, answer: str):
        log = logger.bind(session_id=session_id)
        request = QuestionForEvaluation(
            prompt=question.prompt,
            difficulty=question.difficulty,
            prior_guidance=question.answer_guidance,
        )
        try:
            result = await self.gateway.evaluate_answer(request, answer)
        except Exception as e:
            # A missing evaluation counts as 0; the interview goes on
            log.warning(f"Evaluation failed for question {question.order + 1}: {e}")
            self.store.append_message(session_id, "system", EVALUATION_ERROR_MESSAGE, type="error", error=str(e))
            return

        score = max(0, min(100, int(result.score)))
        self.store.update_question_evaluation(question.id, score, result.feedback)
        self.store.append_message(
            session_id,
            "assistant",
            result.feedback,
            type="evaluation",
            question_id=question.id,
            score=score,
        )
        log.info(f"Question {question.order + 1} scored {score}")

    async def _finalize(self, session_id: str):
        session = self.store.get_session(session_id)
        candidate = self.store.get_candidate(session.candidate_id)
        log = logger.bind(session_id=session_id)

        if session.status == SessionStatus.COMPLETED:
            return

        questions = self.store.session_questions(session_id)
        if len(questions) < self.total_questions or any(not q.is_resolved for q in questions):
            raise InvalidTransitionError(
                f"Cannot finalize session {session_id}: {len(questions)}/{self.total_questions} questions, "
                f"{sum(1 for q in questions if q.is_resolved)} resolved"
            )

        answered = [
            AnsweredQuestion(prompt=q.prompt, difficulty=q.difficulty, answer=q.answer, evaluation=q.evaluation)
            for q in questions
        ]
        log.info("Generating interview summary")
        try:
            summary = await self.gateway.summarize(candidate, answered)
        except Exception as e:
            log.error(f"Summary generation failed: {e}")
            self.store.append_message(session_id, "system", SUMMARY_ERROR_MESSAGE, type="error", error=str(e))
            raise

        total = sum(q.evaluation.score if q.evaluation else 0 for q in questions)
        average = total / self.total_questions
        final_score = round_score(average)
        at = summary.generated_at

        self.store.update_session_status(session_id, SessionStatus.COMPLETED, at)
        self.store.update_candidate_status(candidate.id, CandidateStatus.COMPLETED, at)
        self.store.update_candidate_score(candidate.id, final_score, summary.summary, at)
        self.store.append_message(
            session_id,
            "assistant",
            summary.summary,
            type="summary",
            final_score=average,
        )
        self.store.set_current_question(session_id, None, at)
        self._release(session_id, questions)
        log.success(f"Interview completed. Final score: {final_score}")

    def _release(self, session_id: str, questions: List[InterviewQuestion]):
        """Forget the bookkeeping of a completed session."""
        self._auto_submitted.difference_update(q.id for q in questions)
        # Waiters already queued keep their reference to the old lock
        self._locks.pop(session_id, None)

    # --- Helpers ---

    def _fill_missing_contact(self, candidate: Candidate, text: str):
        """Fill only the contact fields that are still empty."""
        extracted = extract_contact_details(text)
        updates = {
            key: extracted[key]
            for key in ("name", "email", "phone")
            if not getattr(candidate, key) and extracted.get(key)
        }
        if updates:
            self.store.update_candidate_contact(candidate.id, **updates)
            logger.debug(f"Candidate {candidate.id} provided: {', '.join(updates)}")

    def _trim_resume(self, resume: ResumeMetadata) -> ResumeMetadata:
        if resume.parsed_text and len(resume.parsed_text) > self.max_resume_chars:
            return resume.model_copy(update={"parsed_text": resume.parsed_text[:self.max_resume_chars]})
        return resume

    def _profile(self, candidate: Candidate) -> CandidateProfile:
        return CandidateProfile(
            id=candidate.id,
            name=candidate.name,
            email=candidate.email,
            phone=candidate.phone,
            role=candidate.role,
            resume_text=candidate.resume.parsed_text if candidate.resume else None,
        )
