import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import InterviewConfig
from src.orchestrator.orchestrator import InterviewOrchestrator
from src.orchestrator.schema import (
    EvaluationResult,
    QuestionResult,
    ResumeMetadata,
    SummaryResult,
)
from src.orchestrator.state_manager import SessionStore
from src.utils.error_handlers import GatewayError


class FakeGateway:
    """Scripted stand-in for the LLM service."""

    def __init__(self):
        self.scores = []
        self.question_calls = []
        self.evaluation_calls = []
        self.summary_calls = []
        self.question_failures = 0
        self.failing_evaluations = set()
        self.summary_failures = 0
        self.question_delay = 0.0
        self.evaluation_delay = 0.0
        self.raw_evaluation = None

    async def generate_question(self, difficulty, candidate, previous_questions):
        self.question_calls.append(
            {"difficulty": difficulty, "candidate": candidate, "previous": list(previous_questions)}
        )
        if self.question_delay:
            await asyncio.sleep(self.question_delay)
        if self.question_failures > 0:
            self.question_failures -= 1
            raise GatewayError("question service down")
        number = len(self.question_calls)
        return QuestionResult(question=f"Question {number} ({difficulty.value})?", answer_guidance=f"guide {number}")

    async def evaluate_answer(self, question, candidate_answer):
        index = len(self.evaluation_calls)
        self.evaluation_calls.append({"question": question, "answer": candidate_answer})
        if self.evaluation_delay:
            await asyncio.sleep(self.evaluation_delay)
        if index in self.failing_evaluations:
            raise GatewayError("evaluation service down")
        if self.raw_evaluation is not None:
            return self.raw_evaluation
        score = self.scores[index] if index < len(self.scores) else 50
        return EvaluationResult(score=score, feedback=f"Feedback {index + 1}")

    async def summarize(self, candidate, questions):
        self.summary_calls.append({"candidate": candidate, "questions": list(questions)})
        if self.summary_failures > 0:
            self.summary_failures -= 1
            raise GatewayError("summary service down")
        return SummaryResult(summary="Strong fundamentals, some gaps on scaling.")


@pytest.fixture
def settings():
    return InterviewConfig()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def orchestrator(store, gateway, settings):
    return InterviewOrchestrator(store, gateway, settings)


@pytest.fixture
def resume():
    return ResumeMetadata(
        file_name="jane.pdf",
        file_type="application/pdf",
        size=1024,
        parsed_text="Jane Doe\nSenior engineer, React and Node.js",
    )


@pytest.fixture
def ready_session(orchestrator, resume):
    """A session whose candidate gave every detail."""
    return orchestrator.open_session(
        name="Jane Doe",
        email="jane@example.com",
        phone="+1 555 123 4567",
        resume=resume,
    )


def answer_all(orchestrator, session_id, answers):
    """Start the interview and submit `answers` one by one."""
    async def scenario():
        await orchestrator.start_interview(session_id)
        for answer in answers:
            await orchestrator.submit_answer(session_id, answer)
    asyncio.run(scenario())
