"""
Noise gate: flags windows corrupted by saturation or motion artifacts.
"""

import numpy as np
from numpy.typing import NDArray

from neuroclassifier.core.exceptions import ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


class NoiseGate:
    """
    Threshold-based artifact detector over a window of raw samples.

    A channel is flagged when its variance or its peak-to-peak amplitude
    exceeds the configured threshold. Sensitivity divides both thresholds,
    so 2.0 flags at half the amplitude/variance of 1.0.
    """

    def __init__(
        self,
        variance_threshold: float = 600.0,
        amplitude_threshold: float = 500.0,
        sensitivity: float = 1.0
    ) -> None:
        """
        Initialize noise gate.

        Args:
            variance_threshold: Per-channel variance limit (uV^2)
            amplitude_threshold: Per-channel peak-to-peak limit (uV)
            sensitivity: Threshold divisor (> 0)
        """
        if sensitivity <= 0:
            raise ValidationError(f"Sensitivity must be positive, got {sensitivity}")

        self.variance_threshold = variance_threshold / sensitivity
        self.amplitude_threshold = amplitude_threshold / sensitivity
        self.sensitivity = sensitivity

        logger.info(
            "noise_gate_initialized",
            variance_threshold=self.variance_threshold,
            amplitude_threshold=self.amplitude_threshold
        )

    def detect(self, window: NDArray[np.float64]) -> NDArray[np.bool_]:
        """
        Flag noisy channels.

        Args:
            window: EEG data of shape (n_channels, n_samples)

        Returns:
            Boolean flags of shape (n_channels,)
        """
        if window.ndim != 2 or window.shape[1] == 0:
            raise ValidationError(f"Expected (n_channels, n_samples) window, got {window.shape}")

        variance = np.var(window, axis=1)
        peak_to_peak = np.ptp(window, axis=1)

        flags = (variance > self.variance_threshold) | (peak_to_peak > self.amplitude_threshold)
        # NaN/inf from a misbehaving transport is treated as saturation
        flags |= ~np.all(np.isfinite(window), axis=1)
        return flags

    @staticmethod
    def any_flagged(flags: NDArray[np.bool_]) -> bool:
        return bool(np.any(flags))

    def is_noisy(self, window: NDArray[np.float64]) -> bool:
        """Shortcut for `any_flagged(detect(window))`."""
        return self.any_flagged(self.detect(window))
