from typing import List, Protocol

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


class InterviewGateway(Protocol):
    """
    The three calls the orchestrator makes to the LLM service.

    Implementations raise `GatewayError` (or `MalformedResponseError`)
    when they cannot produce a well-formed result. They apply no timeout
    of their own beyond the transport's.
    """

    async def generate_question(
        self,
        difficulty: Difficulty,
        candidate: CandidateProfile,
        previous_questions: List[PreviousQuestion],
    ) -> QuestionResult: ...

    async def evaluate_answer(self, question: QuestionForEvaluation, candidate_answer: str) -> EvaluationResult: ...

    async def summarize(self, candidate: Candidate, questions: List[AnsweredQuestion]) -> SummaryResult: ...
