import pytest
from pydantic import ValidationError

from config import InterviewConfig, LLMConfig


def test_default_interview_settings():
    settings = InterviewConfig()
    assert settings.difficulty_sequence == ["easy", "easy", "medium", "medium", "hard", "hard"]
    assert settings.timer_by_difficulty == {"easy": 20, "medium": 60, "hard": 120}
    assert settings.total_questions == 6
    assert settings.default_role == "Full Stack Engineer"


def test_unknown_difficulty_is_rejected():
    with pytest.raises(ValidationError):
        InterviewConfig(difficulty_sequence=["easy", "impossible"])


def test_empty_sequence_is_rejected():
    with pytest.raises(ValidationError):
        InterviewConfig(difficulty_sequence=[])


def test_timers_must_be_positive():
    with pytest.raises(ValidationError):
        InterviewConfig(timer_by_difficulty={"easy": 20, "medium": 0, "hard": 120})
    with pytest.raises(ValidationError):
        InterviewConfig(timer_by_difficulty={"easy": 20, "medium": 60})


def test_retries_must_be_positive():
    with pytest.raises(ValidationError):
        LLMConfig(max_retries=0)


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("LLM_MODEL", "anthropic/claude-3-haiku")
    monkeypatch.setenv("INTERVIEW_DEFAULT_ROLE", "Backend Engineer")
    assert LLMConfig().model == "anthropic/claude-3-haiku"
    assert InterviewConfig().default_role == "Backend Engineer"
