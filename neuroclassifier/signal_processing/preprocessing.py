"""
Signal preprocessing: mains interference removal at ingestion time.
"""

from typing import Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray
from scipy import signal

from neuroclassifier.core.exceptions import ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


class ArtifactFilter:
    """
    Per-channel Butterworth bandstop filter applied one sample at a time.

    The filter itself is stateless: coefficients are designed once from the
    sampling rate and stop band, and `transform` threads the delay-line
    state through each call. Whoever owns the state must keep passing it
    back in; starting over from zeros mid-stream reintroduces the filter's
    start-up transient.
    """

    def __init__(
        self,
        sampling_rate: int,
        n_channels: int,
        stop_low: float = 55.0,
        stop_high: float = 65.0,
        order: int = 5
    ) -> None:
        """
        Initialize bandstop filter.

        Args:
            sampling_rate: Sampling rate in Hz
            n_channels: Number of EEG channels
            stop_low: Lower edge of the stop band in Hz
            stop_high: Upper edge of the stop band in Hz
            order: Butterworth design order
        """
        nyquist = sampling_rate / 2.0
        if not 0 < stop_low < stop_high < nyquist:
            raise ValidationError(
                f"Stop band {stop_low}-{stop_high} Hz invalid for {sampling_rate} Hz"
            )

        self.sampling_rate = sampling_rate
        self.n_channels = n_channels
        self.stop_low = stop_low
        self.stop_high = stop_high
        self.order = order

        # Second-order sections for numerical stability
        self.sos = signal.butter(
            order,
            [stop_low, stop_high],
            btype='bandstop',
            output='sos',
            fs=sampling_rate
        )

        logger.info(
            "artifact_filter_initialized",
            sampling_rate=sampling_rate,
            stop_band=f"{stop_low}-{stop_high} Hz",
            order=order
        )

    def initial_state(self) -> NDArray[np.float64]:
        """
        Zeroed delay lines.

        Returns:
            Array of shape (n_sections, n_channels, 2)
        """
        return np.zeros((self.sos.shape[0], self.n_channels, 2))

    def transform(
        self,
        sample: Union[Sequence[float], NDArray[np.float64]],
        state: NDArray[np.float64]
    ) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        """
        Filter one multi-channel sample.

        Args:
            sample: Array-like of shape (n_channels,)
            state: Delay-line state from `initial_state` or a previous call

        Returns:
            filtered: Filtered sample of shape (n_channels,)
            state: Updated delay-line state
        """
        values = np.asarray(sample, dtype=np.float64)
        if values.shape != (self.n_channels,):
            raise ValidationError(
                f"Sample has shape {values.shape}, expected ({self.n_channels},)"
            )

        filtered, new_state = signal.sosfilt(
            self.sos,
            values[:, np.newaxis],
            axis=-1,
            zi=state
        )
        return filtered[:, 0], new_state


class StreamingArtifactFilter:
    """
    Producer-side owner of the artifact filter state.

    Pass-through when disabled, e.g. when the device sampling rate does not
    match the mains interference assumption the stop band was chosen for.
    """

    def __init__(self, artifact_filter: ArtifactFilter | None) -> None:
        self.artifact_filter = artifact_filter
        self.state = artifact_filter.initial_state() if artifact_filter else None

    @property
    def enabled(self) -> bool:
        return self.artifact_filter is not None

    def apply(
        self,
        sample: Union[Sequence[float], NDArray[np.float64]]
    ) -> NDArray[np.float64]:
        values = np.asarray(sample, dtype=np.float64)
        if self.artifact_filter is None:
            return values

        if not np.all(np.isfinite(values)):
            # Passed through unfiltered with the delay lines untouched; the
            # noise gate rejects every window holding it
            logger.warning("non_finite_sample", sample=values.tolist())
            return values

        filtered, self.state = self.artifact_filter.transform(values, self.state)
        return filtered

    def reset_filter_state(self) -> None:
        """Reset filter state (for new sessions only)."""
        if self.artifact_filter is not None:
            self.state = self.artifact_filter.initial_state()
        logger.debug("filter_state_reset")
