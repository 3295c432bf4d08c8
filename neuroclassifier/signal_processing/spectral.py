"""
Spectral estimation: windowed FFT log power and its temporal smoothing.
"""

from collections import deque
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy import signal

from neuroclassifier.core.exceptions import ProcessingError, ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


def next_power_of_two(n: int) -> int:
    return 1 << max(0, int(n) - 1).bit_length()


class SpectralEstimator:
    """
    Log power spectral density of one window per channel.

    Each window is Hamming-tapered, zero-padded to a fixed FFT length and
    turned into a one-sided PSD, then into log10 power with a floor. The
    FFT length and frequency bins are fixed at construction, so frames from
    the same estimator are always comparable bin for bin.
    """

    def __init__(
        self,
        sampling_rate: int,
        window_length: int,
        fft_length: Optional[int] = None,
        log_floor: float = 1e-12
    ) -> None:
        """
        Initialize spectral estimator.

        Args:
            sampling_rate: Sampling rate in Hz
            window_length: Samples per analysis window
            fft_length: Transform length (default: next power of two >= window_length)
            log_floor: Smallest power passed to log10
        """
        self.sampling_rate = sampling_rate
        self.window_length = window_length
        self.fft_length = fft_length or next_power_of_two(window_length)
        self.log_floor = log_floor

        if self.fft_length < window_length:
            raise ValidationError(
                f"FFT length {self.fft_length} shorter than window {window_length}"
            )

        self.taper = signal.get_window('hamming', window_length)
        # Density scaling, as in scipy.signal.periodogram
        self.scale = 1.0 / (sampling_rate * np.sum(self.taper ** 2))
        self.freq_bins = np.fft.rfftfreq(self.fft_length, d=1.0 / sampling_rate)

        logger.info(
            "spectral_estimator_initialized",
            sampling_rate=sampling_rate,
            window_length=window_length,
            fft_length=self.fft_length,
            n_bins=self.n_bins
        )

    @property
    def n_bins(self) -> int:
        return len(self.freq_bins)

    def compute_log_psd(self, channel_samples: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Log power per frequency bin for one channel.

        Args:
            channel_samples: 1-D array; only the latest window_length samples are used

        Returns:
            log10 power of shape (n_bins,)
        """
        if channel_samples.shape[-1] < self.window_length:
            raise ValidationError(
                f"Need {self.window_length} samples, got {channel_samples.shape[-1]}"
            )
        return self._log_psd(channel_samples[..., -self.window_length:])

    def compute_frame(self, window: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Log PSD frame for every channel of a window.

        Args:
            window: EEG data of shape (n_channels, n_samples)

        Returns:
            Frame of shape (n_channels, n_bins)
        """
        if window.ndim != 2:
            raise ValidationError(f"Expected (n_channels, n_samples) window, got {window.shape}")

        frame = self.compute_log_psd(window)
        if not np.all(np.isfinite(frame)):
            raise ProcessingError("Non-finite values in PSD frame")
        return frame

    def _log_psd(self, samples: NDArray[np.float64]) -> NDArray[np.float64]:
        # Remove the DC offset so it cannot leak into the lowest bands
        centred = samples - np.mean(samples, axis=-1, keepdims=True)
        spectrum = np.fft.rfft(centred * self.taper, n=self.fft_length, axis=-1)
        power = (np.abs(spectrum) ** 2) * self.scale

        # One-sided: double everything except DC (and Nyquist for even lengths)
        if self.fft_length % 2 == 0:
            power[..., 1:-1] *= 2
        else:
            power[..., 1:] *= 2

        return np.log10(np.maximum(power, self.log_floor))


class SmoothedPSDHistory:
    """
    Rolling history of PSD frames.

    Averaging the last few frames damps single-window estimation noise
    without adding more latency than the history depth.
    """

    def __init__(self, depth: int, n_channels: int, n_bins: int) -> None:
        if depth < 1:
            raise ValidationError(f"History depth must be >= 1, got {depth}")

        self.depth = depth
        self.n_channels = n_channels
        self.n_bins = n_bins
        self._frames: deque = deque(maxlen=depth)

    def update(self, frame: NDArray[np.float64]) -> None:
        """Push a frame, evicting the oldest when full."""
        if frame.shape != (self.n_channels, self.n_bins):
            raise ValidationError(
                f"Frame has shape {frame.shape}, expected ({self.n_channels}, {self.n_bins})"
            )
        self._frames.append(np.array(frame, dtype=np.float64))

    def mean(self) -> NDArray[np.float64]:
        """
        Temporal mean of the frames currently held.

        Returns:
            Array of shape (n_channels, n_bins)
        """
        if not self._frames:
            raise ValidationError("PSD history is empty")
        return np.mean(np.stack(self._frames), axis=0)

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)
