"""
Crisp Interview Engine - Configuration

This file manages the process-wide settings of the interview engine.
The difficulty sequence and the timer allotments live here, not in the
session state: every session runs against the same constants.
"""

import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from loguru import logger
from src.utils.logger import setup_logging
load_dotenv()


DIFFICULTIES = ("easy", "medium", "hard")


class LLMConfig(BaseSettings):
    """Settings of the question/evaluation/summary service"""

    # OpenRouter (OpenAI compatible chat completions)
    base_url: str = Field("https://openrouter.ai/api/v1/chat/completions")
    api_key: str = Field("")
    model: str = Field("openai/gpt-4o-mini")
    timeout: int = Field(60)
    max_retries: int = Field(3)

    # Headers OpenRouter uses for attribution
    referer: str = Field("http://localhost:3000")
    app_title: str = Field("Crisp Interview Assistant")

    # Per call generation settings
    question_max_tokens: int = Field(600)
    question_temperature: float = Field(0.6)
    evaluation_max_tokens: int = Field(500)
    evaluation_temperature: float = Field(0.4)
    summary_max_tokens: int = Field(400)
    summary_temperature: float = Field(0.4)

    @field_validator("max_retries", mode="before")
    @classmethod
    def valid_retries(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("max_retries must be at least 1")
        return int(v)

    model_config = {"env_prefix": "LLM_", "env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class ApplicationConfig(BaseSettings):
    """General application settings"""

    base_dir: Path = Path(__file__).parent
    state_dir: Path = Field(Path("./data/sessions"))

    log_level: str = Field("INFO")

    auto_save_interval: int = Field(30)  # seconds
    command_timeout: int = Field(180)  # seconds, applied by the host

    debug: bool = Field(False)

    @field_validator("state_dir", mode="before")
    @classmethod
    def create_dirs(cls, v: Path) -> Path:
        Path(v).mkdir(parents=True, exist_ok=True)
        return Path(v)

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class InterviewConfig(BaseSettings):
    """Interview flow settings"""

    difficulty_sequence: list[str] = ["easy", "easy", "medium", "medium", "hard", "hard"]

    timer_by_difficulty: dict[str, int] = {
        "easy": 20,
        "medium": 60,
        "hard": 120,
    }

    tick_interval: float = Field(1.0)  # seconds

    default_role: str = Field("Full Stack Engineer")
    max_resume_chars: int = Field(50000)

    @field_validator("difficulty_sequence")
    @classmethod
    def valid_sequence(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("difficulty sequence cannot be empty")
        unknown = [d for d in v if d not in DIFFICULTIES]
        if unknown:
            raise ValueError(f"Unknown difficulties: {unknown}")
        return v

    @field_validator("timer_by_difficulty")
    @classmethod
    def valid_timers(cls, v: dict[str, int]) -> dict[str, int]:
        for difficulty in DIFFICULTIES:
            if v.get(difficulty, 0) <= 0:
                raise ValueError(f"Timer for '{difficulty}' must be a positive number of seconds")
        return v

    @property
    def total_questions(self) -> int:
        return len(self.difficulty_sequence)

    model_config = {"env_prefix": "INTERVIEW_", "env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class Config:
    """Singleton main configuration object"""

    _instance: Optional["Config"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized") and self._initialized:
            return

        self.llm = LLMConfig()
        self.app = ApplicationConfig()
        self.interview = InterviewConfig()

        # Start the logger
        setup_logging(log_level=self.app.log_level, base_dir=self.app.base_dir)

        self._initialized = True

    def validate(self) -> bool:
        """Check that the engine can talk to the LLM service"""
        try:
            if not self.llm.api_key:
                logger.error("LLM_API_KEY is not set. Question generation will fail without it.")
                return False

            assert self.app.state_dir.exists()

            logger.info("Configuration check passed")
            return True

        except Exception as e:
            logger.error(f"Configuration check failed: {e}")
            return False

    def get_summary(self) -> dict:
        """Return a configuration summary"""
        return {
            "llm": {
                "model": self.llm.model,
                "endpoint": self.llm.base_url,
                "api_key_set": bool(self.llm.api_key),
            },
            "interview_settings": {
                "total_questions": self.interview.total_questions,
                "sequence": self.interview.difficulty_sequence,
                "timers": self.interview.timer_by_difficulty,
            },
            "storage": {
                "state_dir": str(self.app.state_dir),
                "auto_save_interval": self.app.auto_save_interval,
            },
        }


# Global config instance
config = Config()


if __name__ == "__main__":
    import json

    print("Crisp Interview Engine Configuration")
    print("=" * 50)
    print(json.dumps(config.get_summary(), indent=2))

    if config.validate():
        print("✅ Ready")
    else:
        print("❌ Not ready, fix the errors above.")
        sys.exit(1)
