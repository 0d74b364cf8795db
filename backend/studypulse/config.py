import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    database_url: Optional[str] = Field(None, alias="STUDYPULSE_DATABASE_URL")
    database_pool_size: int = Field(10, alias="STUDYPULSE_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="STUDYPULSE_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="STUDYPULSE_DATABASE_ECHO")

    analytics_timezone: str = Field("UTC", alias="STUDYPULSE_TIMEZONE")
    test_max_marks: float = Field(720.0, alias="STUDYPULSE_TEST_MAX_MARKS", gt=0)
    daily_question_target: float = Field(500.0, alias="STUDYPULSE_DAILY_QUESTION_TARGET", gt=0)
    max_daily_questions: float = Field(4000.0, alias="STUDYPULSE_MAX_DAILY_QUESTIONS", gt=0)
    daily_study_minutes_target: float = Field(600.0, alias="STUDYPULSE_DAILY_MINUTES_TARGET", gt=0)
    trend_threshold_points: float = Field(1.0, alias="STUDYPULSE_TREND_THRESHOLD_POINTS", ge=0)
    trend_threshold_percent: float = Field(5.0, alias="STUDYPULSE_TREND_THRESHOLD_PERCENT", ge=0)
    forgetting_curve_offsets: List[int] = Field(
        default_factory=lambda: [1, 3, 7, 14, 30, 60, 90, 180],
        alias="STUDYPULSE_FORGETTING_CURVE_OFFSETS",
    )
    optimal_hours_top_n: int = Field(4, alias="STUDYPULSE_OPTIMAL_HOURS_TOP_N", ge=1)
    forecast_weight_tests: float = Field(0.5, alias="STUDYPULSE_FORECAST_WEIGHT_TESTS", ge=0)
    forecast_weight_accuracy: float = Field(0.3, alias="STUDYPULSE_FORECAST_WEIGHT_ACCURACY", ge=0)
    forecast_weight_consistency: float = Field(0.2, alias="STUDYPULSE_FORECAST_WEIGHT_CONSISTENCY", ge=0)
    forecast_recent_test_window: int = Field(5, alias="STUDYPULSE_FORECAST_RECENT_TEST_WINDOW", ge=1)
    forecast_recent_test_decay: float = Field(0.5, alias="STUDYPULSE_FORECAST_RECENT_TEST_DECAY", gt=0, le=1)
    forecast_z_score: float = Field(1.645, alias="STUDYPULSE_FORECAST_Z_SCORE", gt=0)
    forecast_range_floor_pct: float = Field(2.0, alias="STUDYPULSE_FORECAST_RANGE_FLOOR_PCT", ge=0)
    forecast_range_ceiling_pct: float = Field(15.0, alias="STUDYPULSE_FORECAST_RANGE_CEILING_PCT", gt=0)
    forecast_trend_adjustment_pct: float = Field(2.0, alias="STUDYPULSE_FORECAST_TREND_ADJUSTMENT_PCT", ge=0)
    forecast_trend_metric: str = Field("accuracy_rate", alias="STUDYPULSE_FORECAST_TREND_METRIC")
    recommendation_limit: int = Field(2, alias="STUDYPULSE_RECOMMENDATION_LIMIT", ge=1)
    low_data_threshold: float = Field(0.5, alias="STUDYPULSE_LOW_DATA_THRESHOLD", ge=0, le=1)
    expected_chapter_count: Optional[int] = Field(None, alias="STUDYPULSE_EXPECTED_CHAPTERS", ge=0)

    fetch_timeout_seconds: float = Field(10.0, alias="STUDYPULSE_FETCH_TIMEOUT_SECONDS", gt=0)
    fetch_test_limit: int = Field(20, alias="STUDYPULSE_FETCH_TEST_LIMIT", ge=1)
    snapshot_cache_enabled: bool = Field(True, alias="STUDYPULSE_SNAPSHOT_CACHE")

    narrative_mode: Literal["off", "fallback", "primary"] = Field("fallback", alias="STUDYPULSE_NARRATIVE_MODE")
    narrative_model: str = Field("gpt-5-mini", alias="STUDYPULSE_NARRATIVE_MODEL")
    narrative_timeout_seconds: float = Field(8.0, alias="STUDYPULSE_NARRATIVE_TIMEOUT_SECONDS", gt=0)


class AnalyticsTuning(BaseModel):
    """Weights and thresholds consumed by the pure analytics functions."""

    model_config = ConfigDict(frozen=True)

    timezone: str = "UTC"
    test_max_marks: float = 720.0
    daily_question_target: float = 500.0
    max_daily_questions: float = 4000.0
    daily_study_minutes_target: float = 600.0
    trend_threshold_points: float = 1.0
    trend_threshold_percent: float = 5.0
    forgetting_curve_offsets: tuple[int, ...] = (1, 3, 7, 14, 30, 60, 90, 180)
    optimal_hours_top_n: int = 4
    forecast_weight_tests: float = 0.5
    forecast_weight_accuracy: float = 0.3
    forecast_weight_consistency: float = 0.2
    forecast_recent_test_window: int = 5
    forecast_recent_test_decay: float = 0.5
    forecast_z_score: float = 1.645
    forecast_range_floor_pct: float = 2.0
    forecast_range_ceiling_pct: float = 15.0
    forecast_trend_adjustment_pct: float = 2.0
    forecast_trend_metric: str = "accuracy_rate"
    recommendation_limit: int = 2
    low_data_threshold: float = 0.5
    expected_chapter_count: Optional[int] = None


def tuning_from_settings(settings: Settings) -> AnalyticsTuning:
    return AnalyticsTuning(
        timezone=settings.analytics_timezone,
        test_max_marks=settings.test_max_marks,
        daily_question_target=settings.daily_question_target,
        max_daily_questions=settings.max_daily_questions,
        daily_study_minutes_target=settings.daily_study_minutes_target,
        trend_threshold_points=settings.trend_threshold_points,
        trend_threshold_percent=settings.trend_threshold_percent,
        forgetting_curve_offsets=tuple(sorted(set(settings.forgetting_curve_offsets))),
        optimal_hours_top_n=settings.optimal_hours_top_n,
        forecast_weight_tests=settings.forecast_weight_tests,
        forecast_weight_accuracy=settings.forecast_weight_accuracy,
        forecast_weight_consistency=settings.forecast_weight_consistency,
        forecast_recent_test_window=settings.forecast_recent_test_window,
        forecast_recent_test_decay=settings.forecast_recent_test_decay,
        forecast_z_score=settings.forecast_z_score,
        forecast_range_floor_pct=settings.forecast_range_floor_pct,
        forecast_range_ceiling_pct=settings.forecast_range_ceiling_pct,
        forecast_trend_adjustment_pct=settings.forecast_trend_adjustment_pct,
        forecast_trend_metric=settings.forecast_trend_metric,
        recommendation_limit=settings.recommendation_limit,
        low_data_threshold=settings.low_data_threshold,
        expected_chapter_count=settings.expected_chapter_count,
    )


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[call-arg]
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return settings
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc


@lru_cache
def get_tuning() -> AnalyticsTuning:
    return tuning_from_settings(get_settings())
