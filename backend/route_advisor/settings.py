from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep runtime artifacts in backend/out by default to avoid polluting the package.
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tuning values out of code."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Periodic drivers
    condition_tick_s: float = Field(default=6.0, gt=0.0, le=3600.0, alias="CONDITION_TICK_S")
    progress_tick_ms: int = Field(default=250, ge=10, le=60_000, alias="PROGRESS_TICK_MS")
    maneuver_proximity_m: float = Field(default=80.0, gt=0.0, le=5_000.0, alias="MANEUVER_PROXIMITY_M")
    # Demo polylines are resampled to this spacing; 0 keeps the raw vertices.
    max_point_spacing_m: float = Field(default=10.0, ge=0.0, le=1_000.0, alias="MAX_POINT_SPACING_M")

    # Live condition random walk (symmetric half-widths per tick)
    condition_seed: int | None = Field(default=None, alias="CONDITION_SEED")
    condition_speed_delta: float = Field(default=0.05, ge=0.0, le=0.6, alias="CONDITION_SPEED_DELTA")
    condition_crowd_delta: float = Field(default=0.08, ge=0.0, le=1.0, alias="CONDITION_CROWD_DELTA")
    condition_safety_delta: float = Field(default=3.0, ge=0.0, le=40.0, alias="CONDITION_SAFETY_DELTA")

    # Desirability score
    score_baseline_weight: float = Field(default=0.5, ge=0.0, le=1.0, alias="SCORE_BASELINE_WEIGHT")
    score_crowd_scale: float = Field(default=0.8, ge=0.0, le=10.0, alias="SCORE_CROWD_SCALE")
    score_eta_normalizer_min: float = Field(default=30.0, gt=0.0, le=1440.0, alias="SCORE_ETA_NORMALIZER_MIN")

    # Short-horizon forecast
    prediction_period_min: float = Field(default=90.0, gt=0.0, le=10_080.0, alias="PREDICTION_PERIOD_MIN")
    prediction_min_speed_factor: float = Field(default=0.6, gt=0.0, le=1.0, alias="PREDICTION_MIN_SPEED_FACTOR")
    prediction_max_horizon_min: int = Field(default=180, ge=1, le=1440, alias="PREDICTION_MAX_HORIZON_MIN")

    # Startup preferences
    default_candidate: str = Field(default="balanced", alias="DEFAULT_CANDIDATE")
    default_avoid_busy: float = Field(default=0.5, ge=0.0, le=1.0, alias="DEFAULT_AVOID_BUSY")
    default_prefer_lit: float = Field(default=0.5, ge=0.0, le=1.0, alias="DEFAULT_PREFER_LIT")
    default_comfort: float = Field(default=0.5, ge=0.0, le=1.0, alias="DEFAULT_COMFORT")
    default_horizon_min: int = Field(default=15, ge=1, le=1440, alias="DEFAULT_HORIZON_MIN")

    @model_validator(mode="after")
    def _horizon_within_prediction_range(self) -> "Settings":
        if self.default_horizon_min > self.prediction_max_horizon_min:
            self.default_horizon_min = self.prediction_max_horizon_min
        return self


settings = Settings()
