"""
Engine configuration.

Values come from the `engine` section of a profile YAML file and can be
overridden from the environment (prefix `STEPFORCE_`, nested fields with
`__`, e.g. `STEPFORCE_RETRY__MAX_ATTEMPTS=5`).
"""

from pathlib import Path
from typing import Any, List

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_COMPLETION_KEYWORDS = [
    "task completed",
    "finished",
    "done",
    "completed successfully",
    "final answer",
    "conclusion",
]


class RetryPolicy(BaseModel):
    """Retry policy for transient model failures."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    initial_backoff_seconds: float = Field(default=1.0, ge=0.0)
    max_backoff_seconds: float = Field(default=30.0, ge=0.0)

    def backoff_for(self, attempt: int) -> float:
        """Delay before retrying after the given 1-based failed attempt."""
        delay = self.initial_backoff_seconds * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_backoff_seconds)


class EngineSettings(BaseSettings):
    """Execution engine settings with environment variable support."""

    max_steps_per_execution: int = Field(default=10, ge=1, description="Step budget when the agent sets none")
    default_model: str = Field(default="gpt-4o-mini", description="Model used when the agent sets none")
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=2000, ge=1)

    tool_timeout_seconds: float = Field(default=30.0, gt=0, description="Hard wall-clock bound per tool call")
    approval_timeout_seconds: float = Field(default=300.0, gt=0, description="Time an approval may stay unanswered")

    enable_parallel_execution: bool = Field(default=True)
    max_parallel_tools: int = Field(default=3, ge=1)

    enable_human_approval: bool = Field(default=True, description="Gate sensitive tools behind approval")
    required_approval_tools: List[str] = Field(
        default_factory=lambda: ["web_request"],
        description="Tool names gated regardless of their own flag",
    )

    abort_on_tool_failure: bool = Field(
        default=True, description="A failed tool result fails the step and the execution"
    )

    completion_keyword_fallback: bool = Field(
        default=False, description="Sniff completion keywords when the model gives no finish signal"
    )
    completion_keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_COMPLETION_KEYWORDS))

    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    model_config = {
        "env_prefix": "STEPFORCE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values passed in from the profile file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def tool_concurrency(self) -> int:
        return self.max_parallel_tools if self.enable_parallel_execution else 1

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> "EngineSettings":
        return cls(**(data or {}))

    @classmethod
    def load_from_file(cls, config_path: Path) -> "EngineSettings":
        """Load settings from the `engine` section of a YAML file."""
        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

        return cls.from_mapping(config_data.get("engine", {}))
