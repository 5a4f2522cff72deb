"""Application configuration using Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TECHNICAL_KEYWORDS = [
    "api",
    "service",
    "component",
    "library",
    "framework",
    "database",
    "schema",
    "infrastructure",
    "deployment",
    "integration",
    "authentication",
    "authorization",
    "microservice",
    "endpoint",
    "model",
    "migration",
    "configuration",
]


class PlanningTuning(BaseModel):
    max_item_size: int = Field(default=5, ge=1)
    min_split_count: int = Field(default=2, ge=2)
    max_split_count: int = Field(default=4, ge=2)
    split_count_ceiling: int = Field(default=6, ge=2)
    dependency_aware_priority: bool = True
    capacity_buffer_pct: float = Field(default=0.0, ge=0.0, lt=1.0)
    max_backlog_items: int = Field(default=5_000, ge=1)

    model_config = SettingsConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _check_split_bounds(self) -> "PlanningTuning":
        if not self.min_split_count <= self.max_split_count <= self.split_count_ceiling:
            raise ValueError("split counts must satisfy min <= max <= ceiling")
        return self


class ScoringSettings(BaseModel):
    business_value_weight: float = Field(default=1.0, gt=0)
    time_criticality_weight: float = Field(default=1.0, gt=0)
    risk_reduction_weight: float = Field(default=1.0, gt=0)
    urgent_threshold: float = 8.0
    high_threshold: float = 5.0
    medium_threshold: float = 2.0


class InferenceSettings(BaseModel):
    enabled_inferencers: list[str] = Field(default_factory=lambda: ["reference", "shared_component"])
    technical_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_TECHNICAL_KEYWORDS))
    min_shared_components: int = Field(default=2, ge=1)


class ObservabilitySettings(BaseModel):
    otel_service_name: str = "pi-planner"
    otel_exporter_otlp_endpoint: str | None = None
    log_level: str = "INFO"
    log_json: bool = False


class StorageSettings(BaseModel):
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pi_planner.db",
        description="SQLAlchemy async database URL (Postgres 15 in production)",
    )
    artifact_dir: str = "./.artifacts"
    s3_endpoint: str | None = None
    s3_region: str | None = None
    s3_bucket: str | None = None


class PlannerSettings(BaseSettings):
    tuning: PlanningTuning = PlanningTuning()
    scoring: ScoringSettings = ScoringSettings()
    inference: InferenceSettings = InferenceSettings()
    observability: ObservabilitySettings = ObservabilitySettings()
    storage: StorageSettings = StorageSettings()
    environment: Literal["dev", "qa", "prod"] | str = "dev"

    model_config = SettingsConfigDict(env_nested_delimiter="__", env_prefix="PLANNER_", case_sensitive=False)


@lru_cache(maxsize=1)
def get_settings(**kwargs: Any) -> PlannerSettings:
    """Return cached settings instance."""
    return PlannerSettings(**kwargs)


__all__ = ["PlannerSettings", "PlanningTuning", "ScoringSettings", "InferenceSettings", "get_settings"]
