"""
LLM Interview Gateway

Turns the three interview calls (generate a question, evaluate an
answer, summarize the interview) into chat-completion prompts and turns
the replies back into validated results. A reply that is not the JSON we
asked for is rejected, never patched up.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from config import config, LLMConfig
from src.clients.openrouter_client import OpenRouterClient
from src.orchestrator.schema import (
    AnsweredQuestion,
    Candidate,
    CandidateProfile,
    Difficulty,
    EvaluationResult,
    PreviousQuestion,
    QuestionForEvaluation,
    QuestionResult,
    SummaryResult,
)
from src.orchestrator.text_parser import extract_json_block
from src.utils.error_handlers import MalformedResponseError


QUESTION_SYSTEM_PROMPT = """You are Crisp, a senior full-stack interviewer hiring for a React + Node.js position.
Ask one question at a time.
Return strictly JSON with fields: question (string), answer_guidance (string explaining ideal answer and key points).
Do not add commentary outside JSON."""

EVALUATION_SYSTEM_PROMPT = """You are Crisp, an expert technical interviewer for React + Node.js roles.
Evaluate answers on a 0-100 scale. Return JSON with fields: score (number), feedback (string with concise coaching).
Focus on technical depth, correctness, and clarity."""

SUMMARY_SYSTEM_PROMPT = """You are Crisp, summarizing a technical interview. Produce JSON with fields: summary (3-4 sentences) and overall_score (0-100).
In the summary mention strengths, gaps, and hiring recommendation."""


T = TypeVar("T", bound=BaseModel)


def build_question_prompt(
    difficulty: Difficulty,
    candidate: CandidateProfile,
    previous_questions: List[PreviousQuestion],
) -> str:
    profile = "\n".join(
        line for line in (
            candidate.name and f"Name: {candidate.name}",
            candidate.role and f"Role: {candidate.role}",
        ) if line
    )
    asked = "\n".join(
        f"{index}. ({q.difficulty.value}) {q.prompt}" for index, q in enumerate(previous_questions, 1)
    )
    return (
        f"Generate a {difficulty.value} difficulty interview question for a React + Node.js candidate.\n"
        f"Candidate profile:\n{profile or 'Unknown'}\n\n"
        f"Previously asked questions:\n{asked or 'None'}\n\n"
        "The question should be rigorous yet focused. Provide guidance for evaluating answers."
    )


def build_evaluation_prompt(question: QuestionForEvaluation, candidate_answer: str) -> str:
    return (
        f"Interview question: {question.prompt}\n"
        f"Difficulty: {question.difficulty.value}\n"
        f"Expected guidance: {question.prior_guidance or '(not provided)'}\n\n"
        f"Candidate answer:\n{candidate_answer or '(No answer provided)'}"
    )


def build_summary_prompt(candidate: Candidate, questions: List[AnsweredQuestion]) -> str:
    blocks = []
    for index, q in enumerate(questions, 1):
        score = q.evaluation.score if q.evaluation else 0
        feedback = q.evaluation.reasoning if q.evaluation else ""
        blocks.append(
            f"{index}. Q: {q.prompt}\n"
            f"   Difficulty: {q.difficulty.value}\n"
            f"   Candidate answer: {q.answer or '(blank)'}\n"
            f"   Score: {score}\n"
            f"   Feedback: {feedback}"
        )
    timeline = "\n\n".join(blocks)
    return f"Candidate: {candidate.name or 'Unknown'}\nInterview timeline summary:\n{timeline}"


def parse_reply(raw: str, schema: Type[T], fields: Optional[Dict[str, str]] = None) -> T:
    """
    Validate the JSON object in `raw` against `schema`.

    Args:
        raw: LLM reply text
        schema: Result model
        fields: Renames from reply keys to model fields

    Raises:
        MalformedResponseError: when the JSON is missing or does not fit the schema
    """
    data: Dict[str, Any] = extract_json_block(raw)
    for source, target in (fields or {}).items():
        if source in data:
            data[target] = data.pop(source)
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(f"LLM response did not match {schema.__name__}: {e}") from e


class LLMInterviewGateway:
    """Question, evaluation and summary calls backed by a chat-completions client"""

    def __init__(self, client: Optional[OpenRouterClient] = None, settings: Optional[LLMConfig] = None):
        self.settings = settings or config.llm
        self.client = client or OpenRouterClient(self.settings)

    async def generate_question(
        self,
        difficulty: Difficulty,
        candidate: CandidateProfile,
        previous_questions: List[PreviousQuestion],
    ) -> QuestionResult:
        prompt = build_question_prompt(difficulty, candidate, previous_questions)
        raw = await self.client.chat(
            [
                {"role": "system", "content": QUESTION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.settings.question_max_tokens,
            temperature=self.settings.question_temperature,
        )
        result = parse_reply(raw, QuestionResult, {"answerGuidance": "answer_guidance"})
        logger.debug(f"Question generated ({difficulty.value}): {result.question[:80]}")
        return result

    async def evaluate_answer(self, question: QuestionForEvaluation, candidate_answer: str) -> EvaluationResult:
        prompt = build_evaluation_prompt(question, candidate_answer)
        raw = await self.client.chat(
            [
                {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.settings.evaluation_max_tokens,
            temperature=self.settings.evaluation_temperature,
        )
        # EvaluationResult clamps the score to 0..100
        return parse_reply(raw, EvaluationResult)

    async def summarize(self, candidate: Candidate, questions: List[AnsweredQuestion]) -> SummaryResult:
        prompt = build_summary_prompt(candidate, questions)
        raw = await self.client.chat(
            [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.settings.summary_max_tokens,
            temperature=self.settings.summary_temperature,
        )
        data = extract_json_block(raw)
        try:
            return SummaryResult(summary=data.get("summary"), generated_at=datetime.now())
        except ValidationError as e:
            raise MalformedResponseError(f"LLM response did not match SummaryResult: {e}") from e

    async def close(self):
        await self.client.close()
