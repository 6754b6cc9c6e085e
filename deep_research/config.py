from __future__ import annotations

import os
from typing import MutableMapping

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Credit and time estimates per study type; override with STUDY_TYPE_ESTIMATES
DEFAULT_STUDY_TYPE_ESTIMATES: dict[str, dict[str, str | int]] = {
    "sourcing_study": {"credits": 750, "time": "8-12 minutes"},
    "cost_model": {"credits": 600, "time": "6-10 minutes"},
    "market_analysis": {"credits": 500, "time": "5-10 minutes"},
    "supplier_assessment": {"credits": 550, "time": "6-10 minutes"},
    "risk_assessment": {"credits": 500, "time": "5-8 minutes"},
    "custom": {"credits": 500, "time": "5-10 minutes"},
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Reasoner / chat provider (OpenAI-compatible)
    REASONER_API_KEY: str = ""
    REASONER_BASE_URL: str = "https://api.deepseek.com"
    REASONER_MODEL: str = "deepseek-reasoner"
    CHAT_MODEL: str = "deepseek-chat"

    # Schema-JSON provider (OpenAI-compatible endpoint with json_schema support)
    SCHEMA_JSON_API_KEY: str = ""
    SCHEMA_JSON_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    SCHEMA_JSON_MODEL: str = "gemini-2.5-flash"

    # Tavily
    TAVILY_API_KEY: str = ""
    MAX_RESULTS_PER_QUERY: int = 5

    # LangSmith
    LANGSMITH_API_KEY: str = ""
    LANGSMITH_PROJECT: str = "deep-research"
    LANGCHAIN_TRACING_V2: bool = False

    # Per-call deadlines (seconds)
    QUICK_REASON_TIMEOUT_S: float = 30.0
    JSON_DEFAULT_TIMEOUT_S: float = 30.0
    JSON_EXTRACTION_TIMEOUT_S: float = 45.0
    SECTION_TIMEOUT_S: float = 30.0
    SYNTHESIS_TIMEOUT_S: float = 120.0
    WEB_RESEARCH_TIMEOUT_S: float = 60.0

    # Concurrency caps
    AGENT_CONCURRENCY: int = Field(default=3, ge=1)
    SECTION_CONCURRENCY: int = Field(default=2, ge=1)
    EXTRACTION_CONCURRENCY: int = Field(default=3, ge=1)

    # Budgets
    MAX_REGENERATIONS: int = Field(default=2, ge=0)
    MAX_AGENTS: int = Field(default=6, ge=1)
    INSIGHT_STREAM_LIMIT: int = 50
    EVENT_HISTORY_LIMIT: int = 1000
    SUBSCRIBER_QUEUE_SIZE: int = 256

    # Policy
    STUDY_TYPE_ESTIMATES: dict[str, dict[str, str | int]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_STUDY_TYPE_ESTIMATES.items()},
        description="JSON override via env, e.g. STUDY_TYPE_ESTIMATES='{\"custom\": {...}}'",
    )
    REPORT_CREDITS: int = 500
    SKIP_INTERNAL_WHEN_EMPTY: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = Field(default="json", description="'json' for production, 'console' for dev")

    @property
    def tracing_enabled(self) -> bool:
        return self.LANGCHAIN_TRACING_V2 and bool(self.LANGSMITH_API_KEY)

    def tracing_env(self) -> dict[str, str]:
        """Environment variables the langsmith SDK reads to decide whether and where to trace."""
        flag = "true" if self.tracing_enabled else "false"
        env = {"LANGSMITH_TRACING": flag, "LANGCHAIN_TRACING_V2": flag, "LANGSMITH_PROJECT": self.LANGSMITH_PROJECT}
        if self.LANGSMITH_API_KEY:
            env["LANGSMITH_API_KEY"] = self.LANGSMITH_API_KEY
        return env


def get_settings() -> Settings:
    return Settings()


def configure_tracing(settings: Settings, environ: MutableMapping[str, str] | None = None) -> bool:
    """Export the LangSmith settings so ``@traceable`` calls honour them. Returns whether tracing is on."""
    target = os.environ if environ is None else environ
    target.update(settings.tracing_env())
    return settings.tracing_enabled
