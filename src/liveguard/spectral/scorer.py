"""
Spectral Liveness Scorer
========================

Computes a bounded liveness score from a single grayscale image via 2-D
frequency-domain analysis.

This scorer:
    - Pads the image into a fixed N×N buffer (N a power of two)
    - Computes the magnitude spectrum of the forward 2-D real DFT
    - Discards the lowest-index (DC-dominated) bins
    - Maps the mean high-frequency energy onto [0, 10]
    - Tracks a short score history for variance/penalty detection

Why high frequencies:
    Genuine optical/sensor capture carries broadband high-frequency noise.
    Heavily compressed or synthetically generated frames are smoother, so
    their high-frequency energy sits lower on the calibration scale.

Calibration:
    aligned    = mean(|F| × gain over the kept bins) / divisor
    confidence = clamp((aligned − floor) / (ceiling − floor) × 10, 0, 10)

    The anchors (700 / 1600) and the divisor (4.0) are empirical. If the
    normalization is recomputed, keep the anchor-to-scale ratio rather than
    the literal constants.
"""

import logging
import time
from typing import Optional

import numpy as np

from liveguard.config import SpectralConfig
from liveguard.models.state import SpectralState
from liveguard.spectral.errors import (
    FrameTooLargeError,
    InvalidFrameError,
    UnsupportedBufferSizeError,
)


logger = logging.getLogger(__name__)


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


class SpectralScorer:
    """
    Frequency-domain liveness scorer with a rolling variance guard.

    Stateless per call except for the score history held in SpectralState.

    Attributes:
        config: Calibration constants
        fft_size: Side of the square FFT buffer

    Example:
        scorer = SpectralScorer()

        for gray in frames:
            score = scorer.process(gray)
            print(f"Score: {score:.2f}, variance: {scorer.current_variance:.3f}")
    """

    def __init__(
        self,
        config: Optional[SpectralConfig] = None,
        log_every_n_frames: int = 30,
    ) -> None:
        """
        Initialize spectral scorer.

        Args:
            config: Calibration constants (defaults if None)
            log_every_n_frames: Log score/variance every N frames

        Raises:
            UnsupportedBufferSizeError: If fft_size is not a power of two
        """
        self.config = config or SpectralConfig()

        if not is_power_of_two(self.config.fft_size):
            raise UnsupportedBufferSizeError(
                f"fft_size must be a power of two, got {self.config.fft_size}"
            )

        self.fft_size = self.config.fft_size
        self.log_every_n_frames = log_every_n_frames

        self._state = SpectralState(window=self.config.variance_window)
        self._frame_count: int = 0
        self._last_process_ms: float = 0.0

        logger.info(
            f"SpectralScorer initialized: N={self.fft_size}, "
            f"anchors=[{self.config.score_floor}, {self.config.score_ceiling}], "
            f"divisor={self.config.calibration_divisor}, "
            f"penalty={'on' if self.config.apply_penalty else 'advisory'}"
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process(
        self,
        pixels: np.ndarray,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> float:
        """
        Score one grayscale image.

        Args:
            pixels: Grayscale/luma values in [0, 1], either a (H, W) array
                or a flat row-major array together with width and height
            width: Image width (required for flat input)
            height: Image height (required for flat input)

        Returns:
            Liveness confidence in [0, max_confidence]

        Raises:
            InvalidFrameError: Non-positive or inconsistent dimensions
            FrameTooLargeError: Image larger than the FFT buffer
        """
        start = time.perf_counter()
        self._frame_count += 1

        grid = self._prepare_buffer(pixels, width, height)
        aligned = self._aligned_score(grid)
        confidence = self.observe(aligned)

        self._last_process_ms = (time.perf_counter() - start) * 1000

        if self._frame_count % self.log_every_n_frames == 0:
            logger.info(
                f"Spectral [frame {self._frame_count}]: "
                f"aligned={aligned:.1f}, score={confidence:.2f}, "
                f"variance={self._state.current_variance:.3f}, "
                f"penalized={self._state.is_penalized}"
            )

        return confidence

    def observe(self, aligned_score: float) -> float:
        """
        Record an aligned score and derive confidence and penalty.

        This is the stateful half of process(); it is exposed so the
        history/penalty logic can be driven without a frame.

        Args:
            aligned_score: Calibrated spectral energy

        Returns:
            Liveness confidence in [0, max_confidence]
        """
        cfg = self.config
        state = self._state

        state.history.append(float(aligned_score))
        state.current_score = float(aligned_score)
        # Population variance (divide by N)
        state.current_variance = float(np.var(np.fromiter(state.history, dtype=np.float64)))

        confidence = self.confidence_from_score(aligned_score)

        state.is_penalized = (
            state.history_mean > cfg.penalty_mean_threshold
            and state.current_variance < cfg.penalty_variance_threshold
        )

        if state.is_penalized:
            logger.debug(
                f"Static spectrum: mean={state.history_mean:.1f}, "
                f"variance={state.current_variance:.4f}"
            )
            if cfg.apply_penalty:
                confidence *= cfg.penalty_factor

        state.current_confidence = confidence
        return confidence

    def confidence_from_score(self, aligned_score: float) -> float:
        """
        Map an aligned score linearly onto [0, max_confidence].

        floor → 0, ceiling → max_confidence, clamped outside.
        """
        cfg = self.config
        span = cfg.score_ceiling - cfg.score_floor
        confidence = ((aligned_score - cfg.score_floor) / span) * cfg.max_confidence
        return max(0.0, min(cfg.max_confidence, float(confidence)))

    def reset(self) -> None:
        """Reset scorer state."""
        self._state = SpectralState(window=self.config.variance_window)
        self._frame_count = 0
        self._last_process_ms = 0.0
        logger.info("SpectralScorer reset")

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SpectralState:
        """Live spectral state (owned by this scorer)."""
        return self._state

    @property
    def current_score(self) -> float:
        """Latest aligned score."""
        return self._state.current_score

    @property
    def current_confidence(self) -> float:
        """Latest liveness confidence."""
        return self._state.current_confidence

    @property
    def current_variance(self) -> float:
        """Population variance of the score history."""
        return self._state.current_variance

    @property
    def is_penalized(self) -> bool:
        """Whether the last call detected a static, over-smooth spectrum."""
        return self._state.is_penalized

    @property
    def frame_count(self) -> int:
        """Number of frames processed."""
        return self._frame_count

    @property
    def last_process_ms(self) -> float:
        """Latency of the last process() call."""
        return self._last_process_ms

    def get_metrics(self) -> dict:
        """Get scorer metrics for observability."""
        return {
            "frame_count": self._frame_count,
            "current_score": self._state.current_score,
            "current_confidence": self._state.current_confidence,
            "current_variance": self._state.current_variance,
            "is_penalized": self._state.is_penalized,
            "history_length": len(self._state.history),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _prepare_buffer(
        self,
        pixels: np.ndarray,
        width: Optional[int],
        height: Optional[int],
    ) -> np.ndarray:
        """Validate input and place it, scaled, into a zero N×N buffer."""
        data = np.asarray(pixels, dtype=np.float64)

        if width is None and height is None:
            if data.ndim != 2:
                raise InvalidFrameError(
                    f"Expected a 2-D grayscale array, got shape {data.shape}"
                )
            height, width = data.shape
        elif width is None or height is None:
            raise InvalidFrameError("width and height must be given together")

        if width <= 0 or height <= 0:
            raise InvalidFrameError(f"Dimensions must be positive, got {width}x{height}")

        if width > self.fft_size or height > self.fft_size:
            raise FrameTooLargeError(width, height, self.fft_size)

        if data.size != width * height:
            raise InvalidFrameError(
                f"Expected {width * height} values for {width}x{height}, got {data.size}"
            )

        if not np.all(np.isfinite(data)):
            raise InvalidFrameError("Frame contains non-finite values")

        grid = np.zeros((self.fft_size, self.fft_size), dtype=np.float64)
        grid[:height, :width] = data.reshape(height, width) * self.config.pixel_scale
        return grid

    def _aligned_score(self, grid: np.ndarray) -> float:
        """Mean high-frequency magnitude, calibrated."""
        cfg = self.config

        # Half spectrum of the real transform, row-major
        magnitudes = np.abs(np.fft.rfft2(grid)).ravel() * cfg.spectrum_gain

        skip_count = int(magnitudes.size * cfg.skip_fraction)
        relevant = magnitudes[skip_count:]

        raw_score = float(relevant.mean())
        return raw_score / cfg.calibration_divisor
