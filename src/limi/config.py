"""Configuration management for Limi."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from limi.errors import TimingConfigurationError
from limi.integrations.openai_client import DEFAULT_PERSONA_PROMPT
from limi.synthesis.finalizer import UNCERTAIN_TEXT
from limi.synthesis.guard import DEGRADED_TEXT
from limi.synthesis.strategy import Strategy

SHORT_ANSWER_INSTRUCTION = (
    "Reply in at most two short plain-text sentences. "
    "Put the reply between <final> and </final>."
)
DEEP_ANSWER_INSTRUCTION = (
    "Think the question through, then give the user at most two short plain-text sentences. "
    "Put only those sentences between <final> and </final>."
)


class StrategyConfig(BaseModel):
    """Strategy as it appears in settings."""

    name: str
    model: str
    max_tokens: int = Field(gt=0)
    timeout_seconds: float = Field(gt=0)
    instruction: str = SHORT_ANSWER_INSTRUCTION
    endpoint: Literal["chat", "responses"] = "chat"
    temperature: float | None = None

    def to_strategy(self) -> Strategy:
        return Strategy(
            name=self.name,
            model=self.model,
            max_tokens=self.max_tokens,
            timeout_seconds=self.timeout_seconds,
            instruction=self.instruction,
            endpoint=self.endpoint,
            temperature=self.temperature,
        )


def _default_strategies() -> list[StrategyConfig]:
    return [
        StrategyConfig(name="fast", model="gpt-4o-mini", max_tokens=120, timeout_seconds=5.0),
        StrategyConfig(name="primary", model="gpt-5", max_tokens=180, timeout_seconds=8.0),
    ]


def _default_escalation() -> StrategyConfig:
    return StrategyConfig(
        name="deep",
        model="gpt-5",
        max_tokens=400,
        timeout_seconds=9.0,
        instruction=DEEP_ANSWER_INSTRUCTION,
    )


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="LIMI_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Completion service
    api_key: str | None = Field(None, description="API key for the completion service")
    api_base: str | None = Field(None, description="Optional API base URL")
    persona_prompt: str = Field(DEFAULT_PERSONA_PROMPT, description="System prompt shared by all strategies")

    # Strategies and timing
    strategies: list[StrategyConfig] = Field(default_factory=_default_strategies)
    escalation: StrategyConfig | None = Field(default_factory=_default_escalation)
    deadline_seconds: float = Field(default=12.0, gt=0, description="Time budget from arrival to first reply")
    gateway_window_seconds: float = Field(
        default=15.0, gt=0, description="Time after which the messaging gateway gives up on a reply"
    )

    # Reply shape
    max_sentences: int = Field(default=2, description="Sentence ceiling for replies")
    max_chars: int = Field(default=320, description="Character ceiling for replies")
    uncertain_text: str = Field(default=UNCERTAIN_TEXT)
    degraded_text: str = Field(default=DEGRADED_TEXT)

    # Diagnostics and logging
    diagnostics_path: Path | None = Field(None, description="JSONL file receiving pipeline transitions")
    log_level: str = Field(default="INFO", description="Log level")
    log_profile: Literal["default", "chat"] = Field(default="default", description="Log output profile")

    # Telegram
    telegram_token: str | None = None
    telegram_allow_from: str = Field(default="", description="Comma-separated user ids or usernames")

    @property
    def allowed_senders(self) -> set[str]:
        return {token.strip() for token in self.telegram_allow_from.split(",") if token.strip()}

    def build_strategies(self) -> list[Strategy]:
        return [config.to_strategy() for config in self.strategies]

    def build_escalation(self) -> Strategy | None:
        return None if self.escalation is None else self.escalation.to_strategy()


def validate_timing(settings: Settings) -> None:
    """Check that strategy timeouts, the deadline and the gateway window nest.

    Raises:
        TimingConfigurationError: on the first violated constraint.
    """
    if settings.max_sentences < 1:
        raise TimingConfigurationError("max_sentences must be at least 1")
    if settings.max_chars < 2:
        raise TimingConfigurationError("max_chars must be at least 2")

    strategies = settings.build_strategies()
    names = [strategy.name for strategy in strategies]
    if len(set(names)) != len(names):
        raise TimingConfigurationError(f"strategy names must be unique: {names}")

    window = settings.gateway_window_seconds
    escalation = settings.build_escalation()
    for strategy in [*strategies, *([escalation] if escalation else [])]:
        if strategy.timeout_seconds >= window:
            raise TimingConfigurationError(
                f"strategy {strategy.name} timeout {strategy.timeout_seconds}s "
                f"must be below the gateway window {window}s"
            )

    if strategies:
        largest = max(strategy.timeout_seconds for strategy in strategies)
        if settings.deadline_seconds <= largest:
            raise TimingConfigurationError(
                f"deadline {settings.deadline_seconds}s must exceed the largest strategy timeout {largest}s"
            )
    if settings.deadline_seconds >= window:
        raise TimingConfigurationError(
            f"deadline {settings.deadline_seconds}s must be below the gateway window {window}s"
        )


def get_settings(**overrides: object) -> Settings:
    """Load settings from the environment and validate the timing budget."""
    settings = Settings(**overrides)  # type: ignore[arg-type]
    validate_timing(settings)
    return settings
