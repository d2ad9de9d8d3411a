from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..orchestration.enums import AgentState


class StateMachineSettings(BaseModel):
    break_interval_minutes: float = Field(
        45.0,
        ge=0.0,
        description="Minimum time since the last break before TAKE_BREAK is permitted.",
    )
    stamp_break_time: bool = Field(
        True,
        description="Record last_break_time whenever an agent enters the BREAK state.",
    )


class DecisionSettings(BaseModel):
    strict_execution: bool = Field(
        False,
        description="Raise when the selected option's transition fails (after metrics are recomputed).",
    )


class CollaborationSettings(BaseModel):
    approval_threshold: float = Field(0.5, ge=0.0, le=1.0, description="Approval ratio required to activate.")
    require_available_participants: bool = Field(True)
    available_states: list[AgentState] = Field(
        default_factory=lambda: [AgentState.IDLE, AgentState.WORKING],
        description="States in which an agent may be invited into a collaboration.",
    )
    engage_agents_on_activation: bool = Field(
        True,
        description="Drive REQUEST_HELP/PROVIDE_HELP transitions when a task-help session becomes active.",
    )


class VotingSettings(BaseModel):
    dissent_confidence_threshold: float = Field(0.7, ge=0.0, le=1.0)
    default_duration_minutes: float = Field(15.0, gt=0.0)
    max_duration_minutes: float = Field(1440.0, gt=0.0)


class SweeperSettings(BaseModel):
    enabled: bool = Field(True)
    interval_seconds: int = Field(30, ge=1)


class MetricsPolicySettings(BaseModel):
    smoothing_factor: float = Field(
        0.3,
        ge=0.0,
        le=1.0,
        description="Weight given to fresh observations when blending agent metrics.",
    )


class ObservabilitySettings(BaseModel):
    prometheus_enabled: bool = Field(True)
    event_log_enabled: bool = Field(True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class SeedingSettings(BaseModel):
    enabled: bool = Field(False, description="Populate the registry with the demo roster on startup.")


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")
    api_v1_prefix: str = Field("/api/v1")

    state_machine: StateMachineSettings = Field(default_factory=StateMachineSettings)  # type: ignore[arg-type]
    decisions: DecisionSettings = Field(default_factory=DecisionSettings)  # type: ignore[arg-type]
    collaboration: CollaborationSettings = Field(default_factory=CollaborationSettings)  # type: ignore[arg-type]
    voting: VotingSettings = Field(default_factory=VotingSettings)  # type: ignore[arg-type]
    sweeper: SweeperSettings = Field(default_factory=SweeperSettings)  # type: ignore[arg-type]
    metrics: MetricsPolicySettings = Field(default_factory=MetricsPolicySettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]
    seeding: SeedingSettings = Field(default_factory=SeedingSettings)  # type: ignore[arg-type]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )


@lru_cache(maxsize=1)
def _get_cached_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def get_settings(overrides: Mapping[str, Any] | None = None) -> Settings:
    """Return settings, using cached defaults unless overrides are provided."""
    if overrides:
        materialized = dict(overrides)
        allowed_keys = {"environment"}
        filtered = {key: value for key, value in materialized.items() if key in allowed_keys}
        if filtered:
            return Settings(**filtered)
    return _get_cached_settings()
