"""
LiveGuard Configuration
=======================

This module handles configuration loading for the liveness engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    LIVEGUARD_MODE                -> pipeline.mode
    LIVEGUARD_CLASSIFIER_TIMEOUT  -> pipeline.classifier_timeout_sec
    LIVEGUARD_BUFFER_POLICY       -> buffer.policy
    LIVEGUARD_INTERVAL_POLICY     -> scheduler.interval_policy
    LIVEGUARD_APPLY_PENALTY       -> spectral.apply_penalty
    LIVEGUARD_LOG_LEVEL           -> logging.level

Example:
    from liveguard.config import settings

    print(settings.spectral.fft_size)
    print(settings.scheduler.override_trip_real)
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator


logger = logging.getLogger(__name__)


# =============================================================================
# Enumerations
# =============================================================================

class BufferPolicy(str, Enum):
    """
    Eviction discipline of the rolling frame buffer.

    Attributes:
        ROLLING: Evict oldest on push; every batch is the last N frames seen
        DRAIN_ON_FULL: Snapshot clears the buffer; batches never overlap
    """

    ROLLING = "rolling"
    DRAIN_ON_FULL = "drain_on_full"


class IntervalPolicy(str, Enum):
    """
    Which interval table the scheduler uses.

    Attributes:
        SINGLE_SAMPLE: Throttle based on the last classification alone
        STREAK: Throttle only after consecutive confident-real classifications
    """

    SINGLE_SAMPLE = "single_sample"
    STREAK = "streak"


class ProcessingMode(str, Enum):
    """
    Operating mode presets.

    Attributes:
        CONTINUOUS: Low-latency mode (ROLLING buffer, SINGLE_SAMPLE policy)
        DISCRETE: One classification per fresh batch (DRAIN_ON_FULL, STREAK)
    """

    CONTINUOUS = "continuous"
    DISCRETE = "discrete"


# =============================================================================
# Configuration Models
# =============================================================================

class SpectralConfig(BaseModel):
    """Frequency-domain liveness scorer calibration."""

    fft_size: int = Field(
        default=256,
        ge=2,
        description="Side of the square FFT buffer (must be a power of two)",
    )
    pixel_scale: float = Field(
        default=255.0,
        gt=0,
        description="Scale applied to [0, 1] input to match the calibration baseline",
    )
    skip_fraction: float = Field(
        default=0.05,
        ge=0,
        lt=1.0,
        description="Fraction of lowest-index magnitude bins discarded",
    )
    spectrum_gain: float = Field(
        default=2.0,
        gt=0,
        description="Gain applied to DFT magnitudes (packed real-FFT output scale)",
    )
    calibration_divisor: float = Field(
        default=4.0,
        gt=0,
        description="Divisor aligning raw spectral energy with the reference distribution",
    )
    score_floor: float = Field(
        default=700.0,
        description="Aligned score mapped to confidence 0",
    )
    score_ceiling: float = Field(
        default=1600.0,
        description="Aligned score mapped to the maximum confidence",
    )
    max_confidence: float = Field(default=10.0, gt=0, description="Upper bound of the score")
    variance_window: int = Field(
        default=20,
        ge=1,
        description="Number of aligned scores kept for variance/penalty detection",
    )
    penalty_mean_threshold: float = Field(
        default=1500.0,
        description="History mean above which a static spectrum is suspicious",
    )
    penalty_variance_threshold: float = Field(
        default=0.1,
        ge=0,
        description="History variance below which a static spectrum is suspicious",
    )
    apply_penalty: bool = Field(
        default=False,
        description="Multiply the confidence by penalty_factor when penalized",
    )
    penalty_factor: float = Field(default=0.5, ge=0, le=1.0, description="Penalty multiplier")

    @model_validator(mode="after")
    def _check_anchors(self) -> "SpectralConfig":
        if self.score_ceiling <= self.score_floor:
            raise ValueError("score_ceiling must be greater than score_floor")
        return self


class BufferConfig(BaseModel):
    """Rolling frame buffer configuration."""

    capacity: int = Field(default=20, ge=1, description="Frames per classifier batch")
    policy: Optional[BufferPolicy] = Field(
        default=None,
        description="Eviction policy (None = derived from pipeline.mode)",
    )


class SchedulerConfig(BaseModel):
    """Adaptive inference scheduling and override hysteresis."""

    interval_policy: Optional[IntervalPolicy] = Field(
        default=None,
        description="Interval table (None = derived from pipeline.mode)",
    )

    # Interval table thresholds
    ultra_safe_fft: float = Field(default=5.0, description="Min FFT score for max throttle")
    ultra_safe_real: float = Field(default=0.7, ge=0, le=1.0)
    safe_fft: float = Field(default=4.0, description="Min FFT score for reduced frequency")
    safe_real: float = Field(default=0.6, ge=0, le=1.0)
    danger_fft: float = Field(default=3.0, description="FFT score below which vigilance is max")
    danger_real: float = Field(default=0.4, ge=0, le=1.0)
    ultra_safe_streak: int = Field(default=5, ge=1, description="Streak for max throttle")
    safe_streak: int = Field(default=2, ge=1, description="Streak for reduced frequency")

    # Interval durations (seconds)
    max_throttle_interval: float = Field(default=10.0, gt=0)
    reduced_interval: float = Field(default=5.0, gt=0)
    baseline_interval: float = Field(default=1.25, gt=0)
    vigilance_interval: float = Field(default=0.5, gt=0)

    # Hysteresis
    override_trip_real: float = Field(
        default=0.7,
        ge=0,
        le=1.0,
        description="Real probability below which the override trips",
    )
    override_clear_real: float = Field(
        default=0.9,
        ge=0,
        le=1.0,
        description="Real probability above which the override clears",
    )
    streak_real: float = Field(
        default=0.7,
        ge=0,
        le=1.0,
        description="Real probability above which the confident-real streak grows",
    )

    @model_validator(mode="after")
    def _check_hysteresis(self) -> "SchedulerConfig":
        if self.override_clear_real <= self.override_trip_real:
            raise ValueError("override_clear_real must be strictly above override_trip_real")
        return self


class FusionConfig(BaseModel):
    """Danger score weights (must sum to 100)."""

    ai_weight: float = Field(default=90.0, ge=0, description="Points from classifier fake probability")
    fft_weight: float = Field(default=10.0, ge=0, description="Points from inverted spectral score")

    @model_validator(mode="after")
    def _check_budget(self) -> "FusionConfig":
        if abs(self.ai_weight + self.fft_weight - 100.0) > 1e-9:
            raise ValueError("ai_weight + fft_weight must equal 100")
        return self


class PipelineConfig(BaseModel):
    """Frame processing pipeline configuration."""

    mode: ProcessingMode = Field(
        default=ProcessingMode.CONTINUOUS,
        description="Operating mode preset: 'continuous' or 'discrete'",
    )
    classifier_timeout_sec: Optional[float] = Field(
        default=None,
        gt=0,
        description="Timeout around the classifier call (None = no timeout)",
    )
    frame_size: int = Field(default=224, ge=1, description="Side of normalized frames")
    log_every_n_frames: int = Field(default=30, ge=1, description="Periodic log interval")


class PreprocessConfig(BaseModel):
    """Reference face crop preprocessing."""

    padding: float = Field(default=0.2, ge=0, description="Padding around the face box (fraction)")
    target_size: int = Field(default=224, ge=1, description="Output side in pixels")


class ObservabilityConfig(BaseModel):
    """Performance statistics configuration."""

    stats_interval_sec: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between latency/FPS log lines",
    )
    system_usage: bool = Field(
        default=True,
        description="Attach memory/CPU/thermal telemetry to inference results",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for LiveGuard.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    spectral: SpectralConfig = Field(default_factory=SpectralConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    preprocess: PreprocessConfig = Field(default_factory=PreprocessConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def effective_buffer_policy(self) -> BufferPolicy:
        """Buffer policy after applying the mode preset."""
        if self.buffer.policy is not None:
            return self.buffer.policy
        if self.pipeline.mode == ProcessingMode.DISCRETE:
            return BufferPolicy.DRAIN_ON_FULL
        return BufferPolicy.ROLLING

    @property
    def effective_interval_policy(self) -> IntervalPolicy:
        """Interval policy after applying the mode preset."""
        if self.scheduler.interval_policy is not None:
            return self.scheduler.interval_policy
        if self.pipeline.mode == ProcessingMode.DISCRETE:
            return IntervalPolicy.STREAK
        return IntervalPolicy.SINGLE_SAMPLE


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        pydantic.ValidationError: If any value is out of range
    """
    if config_path is None:
        search_paths = [
            Path("liveguard.yaml"),
            Path("config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Pipeline settings
    if env_mode := os.environ.get("LIVEGUARD_MODE"):
        config_data.setdefault("pipeline", {})["mode"] = env_mode
    if env_timeout := os.environ.get("LIVEGUARD_CLASSIFIER_TIMEOUT"):
        config_data.setdefault("pipeline", {})["classifier_timeout_sec"] = float(env_timeout)

    # Policy overrides
    if env_buffer := os.environ.get("LIVEGUARD_BUFFER_POLICY"):
        config_data.setdefault("buffer", {})["policy"] = env_buffer
    if env_interval := os.environ.get("LIVEGUARD_INTERVAL_POLICY"):
        config_data.setdefault("scheduler", {})["interval_policy"] = env_interval

    # Spectral penalty hook
    if env_penalty := os.environ.get("LIVEGUARD_APPLY_PENALTY"):
        config_data.setdefault("spectral", {})["apply_penalty"] = _parse_bool(env_penalty)

    # Logging settings
    if env_log := os.environ.get("LIVEGUARD_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
