import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="INSANUS_DATABASE_URL")
    database_pool_size: int = Field(10, alias="INSANUS_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="INSANUS_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="INSANUS_DATABASE_ECHO")
    persistence_mode: Literal["database", "memory"] = Field(
        "database",
        alias="INSANUS_PERSISTENCE_MODE",
    )
    default_timezone: str = Field("America/Sao_Paulo", alias="INSANUS_DEFAULT_TIMEZONE")
    max_horizon_days: int = Field(730, alias="INSANUS_MAX_HORIZON_DAYS", ge=7)
    default_smart_merge_tolerance: int = Field(20, alias="INSANUS_SMART_MERGE_TOLERANCE", ge=15, le=60)
    anticipation_min_budget_minutes: int = Field(15, alias="INSANUS_ANTICIPATION_MIN_BUDGET")
    anticipation_floor_minutes: int = Field(30, alias="INSANUS_ANTICIPATION_FLOOR")
    anticipation_early_day_minutes: int = Field(60, alias="INSANUS_ANTICIPATION_EARLY_DAY")
    anticipation_lookahead_days: int = Field(14, alias="INSANUS_ANTICIPATION_LOOKAHEAD_DAYS", ge=1)
    anticipation_candidate_limit: int = Field(5, alias="INSANUS_ANTICIPATION_CANDIDATE_LIMIT", ge=1)
    review_min_minutes: int = Field(15, alias="INSANUS_REVIEW_MIN_MINUTES", ge=1)
    review_duration_ratio: float = Field(0.3, alias="INSANUS_REVIEW_DURATION_RATIO", gt=0)
    simulado_default_minutes: int = Field(240, alias="INSANUS_SIMULADO_DEFAULT_MINUTES", ge=1)

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
