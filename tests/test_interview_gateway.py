import asyncio

import pytest

from config import LLMConfig
from src.clients.interview_gateway import (
    LLMInterviewGateway,
    build_evaluation_prompt,
    build_question_prompt,
    parse_reply,
)
from src.orchestrator.schema import (
    AnsweredQuestion,
    Candidate,
    CandidateProfile,
    Difficulty,
    Evaluation,
    EvaluationResult,
    PreviousQuestion,
    QuestionForEvaluation,
    QuestionResult,
)
from src.utils.error_handlers import MalformedResponseError


class FakeChatClient:
    """Returns canned replies and records the prompts it was sent."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []
        self.closed = False

    async def chat(self, messages, max_tokens=600, temperature=0.7, model=None):
        self.calls.append({"messages": messages, "max_tokens": max_tokens, "temperature": temperature})
        return self.replies.pop(0)

    async def close(self):
        self.closed = True


def make_gateway(*replies):
    client = FakeChatClient(*replies)
    return LLMInterviewGateway(client=client, settings=LLMConfig(api_key="test")), client


PROFILE = CandidateProfile(id="c1", name="Jane Doe", role="Full Stack Engineer", resume_text="React")


def test_generate_question_parses_fenced_json():
    gateway, client = make_gateway(
        'Sure!\n```json\n{"question": "What is a closure?", "answerGuidance": "Function plus scope"}\n```'
    )
    result = asyncio.run(gateway.generate_question(Difficulty.EASY, PROFILE, []))

    assert result == QuestionResult(question="What is a closure?", answer_guidance="Function plus scope")
    system, user = client.calls[0]["messages"]
    assert system["role"] == "system"
    assert "easy difficulty" in user["content"]
    assert client.calls[0]["max_tokens"] == 600


def test_question_without_guidance_is_rejected():
    gateway, _ = make_gateway('{"question": "What is a closure?"}')
    with pytest.raises(MalformedResponseError):
        asyncio.run(gateway.generate_question(Difficulty.EASY, PROFILE, []))


def test_reply_without_json_is_rejected():
    gateway, _ = make_gateway("I would ask about closures.")
    with pytest.raises(MalformedResponseError):
        asyncio.run(gateway.generate_question(Difficulty.EASY, PROFILE, []))


def test_broken_json_is_rejected():
    with pytest.raises(MalformedResponseError):
        parse_reply('{"score": 80, "feedback": }', EvaluationResult)


@pytest.mark.parametrize("raw, expected", [
    ('{"score": 150, "feedback": "wow"}', 100),
    ('{"score": -3, "feedback": "no"}', 0),
    ('{"score": "72", "feedback": "ok"}', 72),
    ('{"score": 64.6, "feedback": "ok"}', 65),
])
def test_evaluation_score_is_clamped(raw, expected):
    gateway, _ = make_gateway(raw)
    question = QuestionForEvaluation(prompt="Q", difficulty=Difficulty.MEDIUM, prior_guidance="G")
    result = asyncio.run(gateway.evaluate_answer(question, "A"))
    assert result.score == expected


@pytest.mark.parametrize("raw", [
    '{"score": true, "feedback": "x"}',
    '{"score": "high", "feedback": "x"}',
    '{"score": 80}',
])
def test_invalid_evaluation_is_rejected(raw):
    gateway, _ = make_gateway(raw)
    question = QuestionForEvaluation(prompt="Q", difficulty=Difficulty.MEDIUM)
    with pytest.raises(MalformedResponseError):
        asyncio.run(gateway.evaluate_answer(question, "A"))


def test_summary_requires_text():
    gateway, _ = make_gateway('{"overall_score": 80}')
    with pytest.raises(MalformedResponseError):
        asyncio.run(gateway.summarize(Candidate(name="Jane"), []))


def test_summary_is_parsed():
    gateway, client = make_gateway('{"summary": "Solid candidate.", "overall_score": 80}')
    questions = [
        AnsweredQuestion(
            prompt="Q1",
            difficulty=Difficulty.EASY,
            answer="A1",
            evaluation=Evaluation(score=80, reasoning="good"),
        ),
        AnsweredQuestion(prompt="Q2", difficulty=Difficulty.HARD, answer=""),
    ]
    result = asyncio.run(gateway.summarize(Candidate(name="Jane"), questions))

    assert result.summary == "Solid candidate."
    prompt = client.calls[0]["messages"][1]["content"]
    assert "Score: 80" in prompt
    assert "Score: 0" in prompt


def test_question_prompt_lists_previous_prompts_only():
    previous = [PreviousQuestion(prompt="Explain the event loop", difficulty=Difficulty.EASY)]
    prompt = build_question_prompt(Difficulty.MEDIUM, PROFILE, previous)
    assert "1. (easy) Explain the event loop" in prompt
    assert "medium difficulty" in prompt
    assert "Jane Doe" in prompt


def test_evaluation_prompt_marks_blank_answer():
    question = QuestionForEvaluation(prompt="Q", difficulty=Difficulty.HARD)
    prompt = build_evaluation_prompt(question, "")
    assert "(No answer provided)" in prompt
    assert "(not provided)" in prompt


def test_close_closes_client():
    gateway, client = make_gateway()
    asyncio.run(gateway.close())
    assert client.closed


def test_blank_question_is_rejected():
    gateway, _ = make_gateway('{"question": "   ", "answer_guidance": "anything"}')
    with pytest.raises(MalformedResponseError):
        asyncio.run(gateway.generate_question(Difficulty.EASY, PROFILE, []))


def test_question_text_is_stripped():
    result = QuestionResult(question="  What is a closure?\n", answer_guidance="g")
    assert result.question == "What is a closure?"
