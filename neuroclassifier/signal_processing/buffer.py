"""
Circular buffer shared between the sample producer and the pipeline loop.
"""

import threading
from typing import Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from neuroclassifier.core.exceptions import BufferUnderrunError, ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


class CircularBuffer:
    """
    Fixed-capacity multi-channel ring buffer for streaming EEG data.

    Uses a pre-allocated numpy array with write pointer tracking, plus a
    pending counter of samples written since the last extraction. The
    counter drives windowing: the consumer extracts a window once enough
    new samples have arrived, which resets the counter.

    All state is guarded by a condition variable so a producer thread can
    push while the consumer waits for and copies out a window.
    """

    def __init__(
        self,
        n_channels: int,
        buffer_duration: float,
        sampling_rate: int
    ) -> None:
        """
        Initialize circular buffer.

        Args:
            n_channels: Number of EEG channels
            buffer_duration: Buffer size in seconds
            sampling_rate: Sampling rate in Hz
        """
        self.n_channels = n_channels
        self.sampling_rate = sampling_rate
        self.buffer_duration = buffer_duration
        self.n_samples = int(buffer_duration * sampling_rate)

        if self.n_samples < 1:
            raise ValidationError(
                f"Buffer of {buffer_duration}s at {sampling_rate} Hz holds no samples"
            )

        # Pre-allocate buffer
        self.buffer = np.zeros((self.n_samples, n_channels), dtype=np.float64)
        self.write_idx = 0
        self.is_full = False
        self._pending = 0
        self._condition = threading.Condition()

        logger.debug(
            "circular_buffer_initialized",
            n_channels=n_channels,
            buffer_duration=buffer_duration,
            buffer_samples=self.n_samples
        )

    def push(self, sample: Union[Sequence[float], NDArray[np.float64]]) -> None:
        """
        Append one multi-channel sample, overwriting the oldest when full.

        Args:
            sample: Array-like of shape (n_channels,)
        """
        values = np.asarray(sample, dtype=np.float64)
        if values.shape != (self.n_channels,):
            raise ValidationError(
                f"Sample has shape {values.shape}, expected ({self.n_channels},)"
            )

        with self._condition:
            self.buffer[self.write_idx] = values
            self.write_idx = (self.write_idx + 1) % self.n_samples
            if self.write_idx == 0:
                self.is_full = True
            self._pending += 1
            self._condition.notify_all()

    def append(self, new_data: NDArray[np.float64]) -> None:
        """
        Append a chunk of samples.

        Args:
            new_data: Array of shape (n_samples, n_channels)
        """
        if new_data.ndim != 2 or new_data.shape[1] != self.n_channels:
            raise ValidationError(
                f"Data has shape {new_data.shape}, "
                f"expected (n, {self.n_channels})"
            )

        for row in new_data:
            self.push(row)

    @property
    def pending_count(self) -> int:
        """Samples written since the last extraction."""
        with self._condition:
            return self._pending

    def extract(self, window_length: int) -> NDArray[np.float64]:
        """
        Copy out the most recent samples and reset the pending counter.

        Args:
            window_length: Number of samples to retrieve

        Returns:
            Array of shape (n_channels, window_length), oldest sample first

        Raises:
            BufferUnderrunError: fewer than window_length samples held
        """
        with self._condition:
            window = self._latest(window_length)
            self._pending = 0
        return window.T.copy()

    def wait_for_window(
        self,
        step: int,
        window_length: int,
        timeout: Optional[float] = None
    ) -> bool:
        """
        Block until a window can be extracted.

        Args:
            step: Pending samples required since the last extraction
            window_length: Samples that must be held overall
            timeout: Maximum wait in seconds (None waits indefinitely)

        Returns:
            True if the window is ready, False on timeout
        """
        with self._condition:
            return self._condition.wait_for(
                lambda: self._pending >= step and self._held() >= window_length,
                timeout=timeout
            )

    def get_latest(self, duration: float) -> NDArray[np.float64]:
        """
        Get most recent N seconds of data without touching the pending counter.

        Args:
            duration: Duration in seconds to retrieve

        Returns:
            Array of shape (n_samples, n_channels)
        """
        n_samples = int(duration * self.sampling_rate)
        with self._condition:
            return self._latest(n_samples)

    def get_all(self) -> NDArray[np.float64]:
        """
        Get all valid data in buffer.

        Returns:
            Array of shape (n_valid_samples, n_channels)
        """
        with self._condition:
            if not self.is_full:
                return self.buffer[:self.write_idx].copy()

            # Return in chronological order
            return np.concatenate([
                self.buffer[self.write_idx:],
                self.buffer[:self.write_idx]
            ], axis=0)

    def reset_pending(self) -> None:
        """Forget samples already counted towards the next window."""
        with self._condition:
            self._pending = 0

    def clear(self) -> None:
        """Clear the buffer."""
        with self._condition:
            self.buffer.fill(0)
            self.write_idx = 0
            self.is_full = False
            self._pending = 0
        logger.debug("circular_buffer_cleared")

    @property
    def current_samples(self) -> int:
        """Get number of valid samples currently in buffer."""
        with self._condition:
            return self._held()

    @property
    def current_duration(self) -> float:
        """Get duration of valid data currently in buffer."""
        return self.current_samples / self.sampling_rate

    def _held(self) -> int:
        return self.n_samples if self.is_full else self.write_idx

    def _latest(self, n_samples: int) -> NDArray[np.float64]:
        # Caller holds the condition lock.
        if n_samples > self.n_samples:
            raise BufferUnderrunError(
                f"Requested {n_samples} samples exceeds buffer size ({self.n_samples} samples)"
            )
        if n_samples > self._held():
            raise BufferUnderrunError(
                f"Requested {n_samples} samples, only {self._held()} buffered"
            )

        start_idx = (self.write_idx - n_samples) % self.n_samples

        if start_idx < self.write_idx or n_samples == 0:
            # No wraparound
            return self.buffer[start_idx:start_idx + n_samples].copy()

        # Wraparound case
        return np.concatenate([
            self.buffer[start_idx:],
            self.buffer[:self.write_idx]
        ], axis=0)
