"""
EEG Simulator for testing and development without physical hardware.

Generates multi-channel EEG-like data with:
- A class-dependent dominant rhythm (so two classes are separable)
- Background rhythms and white noise
- Optional mains hum and DC offset
- Blink artifact injection
"""

import threading
import time
from typing import Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from neuroclassifier.core.logging import get_logger
from neuroclassifier.eeg.device_interface import SampleCallback

logger = get_logger(__name__)

# Dominant frequency (Hz) per class label
DEFAULT_CLASS_FREQUENCIES: Dict[int, float] = {
    1: 10.0,  # alpha: eyes closed / relaxed
    2: 20.0,  # beta: concentrating
}


class EEGSimulator:
    """
    Simulates EEG data sample by sample.

    The active class picks the dominant rhythm; everything else is shared
    between classes.
    """

    def __init__(
        self,
        channel_names: Sequence[str] = ("TP9", "AF7", "AF8", "TP10"),
        sampling_rate: int = 256,
        seed: Optional[int] = None,
        class_frequencies: Optional[Dict[int, float]] = None,
        amplitude: float = 10.0,
        noise_level: float = 2.0,
        mains_amplitude: float = 0.0,
        mains_freq: float = 60.0,
        dc_offset: float = 0.0
    ) -> None:
        """
        Initialize EEG simulator.

        Args:
            channel_names: Channel labels
            sampling_rate: Sampling rate in Hz
            seed: Random seed for reproducibility
            class_frequencies: Class label -> dominant frequency (Hz)
            amplitude: Dominant rhythm amplitude (uV)
            noise_level: White noise standard deviation (uV)
            mains_amplitude: Power line hum amplitude (uV), 0 disables
            mains_freq: Power line frequency (Hz)
            dc_offset: Constant offset added to every channel (uV)
        """
        self.channels: List[str] = list(channel_names)
        self.n_channels = len(self.channels)
        self.sampling_rate = sampling_rate
        self.class_frequencies = dict(class_frequencies or DEFAULT_CLASS_FREQUENCIES)
        self.amplitude = amplitude
        self.noise_level = noise_level
        self.mains_amplitude = mains_amplitude
        self.mains_freq = mains_freq
        self.dc_offset = dc_offset

        # Random number generator
        self.rng = np.random.RandomState(seed)

        self.active_class: Optional[int] = None
        self.sample_index = 0
        self._artifact_remaining = 0
        self._artifact_amplitude = 0.0

        # Small per-channel phase and gain variation
        self.channel_phase = self.rng.uniform(0, 2 * np.pi, self.n_channels)
        self.channel_gain = self.rng.uniform(0.8, 1.2, self.n_channels)

        logger.info(
            "eeg_simulator_initialized",
            n_channels=self.n_channels,
            sampling_rate=sampling_rate,
            channels=self.channels
        )

    def set_class(self, label: Optional[int]) -> None:
        """
        Switch the dominant rhythm to the given class (None: background only).
        """
        if label is not None and label not in self.class_frequencies:
            raise ValueError(f"No frequency configured for class {label}")
        self.active_class = label
        logger.debug("simulator_class_set", label=label)

    def inject_blink(self, duration: float = 0.3, amplitude: float = 400.0) -> None:
        """
        Superimpose a blink-like deflection over the next `duration` seconds.
        """
        self._artifact_remaining = int(duration * self.sampling_rate)
        self._artifact_amplitude = amplitude

    def generate_sample(self) -> NDArray[np.float64]:
        """
        Generate one sample across all channels.

        Returns:
            Array of shape (n_channels,) in microvolts
        """
        t = self.sample_index / self.sampling_rate
        sample = np.full(self.n_channels, self.dc_offset, dtype=np.float64)

        # Background: weak theta and low beta shared by every class
        sample += 0.3 * self.amplitude * np.sin(2 * np.pi * 6.0 * t + self.channel_phase)
        sample += 0.2 * self.amplitude * np.sin(2 * np.pi * 16.0 * t + self.channel_phase)

        if self.active_class is not None:
            freq = self.class_frequencies[self.active_class]
            sample += self.amplitude * self.channel_gain * np.sin(
                2 * np.pi * freq * t + self.channel_phase
            )

        if self.mains_amplitude:
            sample += self.mains_amplitude * np.sin(2 * np.pi * self.mains_freq * t)

        sample += self.rng.normal(0, self.noise_level, self.n_channels)

        if self._artifact_remaining > 0:
            # Blinks show up strongest on the frontal channels
            frontal = np.array([1.0 if ch.startswith(("AF", "Fp")) else 0.3 for ch in self.channels])
            sample += self._artifact_amplitude * frontal
            self._artifact_remaining -= 1

        self.sample_index += 1
        return sample

    def generate_chunk(self, duration: float) -> NDArray[np.float64]:
        """
        Generate a chunk of EEG data.

        Args:
            duration: Duration in seconds

        Returns:
            Array of shape (n_samples, n_channels)
        """
        n_samples = int(duration * self.sampling_rate)
        data = np.zeros((n_samples, self.n_channels))

        for i in range(n_samples):
            data[i, :] = self.generate_sample()

        return data

    def stream_to(self, on_sample: SampleCallback, n_samples: int) -> None:
        """Synchronously push n_samples into a callback."""
        for _ in range(n_samples):
            on_sample(self.generate_sample())

    def get_info(self) -> Dict:
        """
        Get simulator information.

        Returns:
            Dictionary with simulator info
        """
        return {
            'device_type': 'simulator',
            'n_channels': self.n_channels,
            'sampling_rate': self.sampling_rate,
            'channels': self.channels,
            'active_class': self.active_class
        }


class StreamingEEGSimulator(EEGSimulator):
    """
    EEG Simulator that pushes samples from a background thread.

    Stands in for a hardware transport. `speed` > 1 runs faster than real
    time, which keeps tests short.
    """

    def __init__(self, *args, speed: float = 1.0, chunk_size: int = 16, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.speed = speed
        self.chunk_size = chunk_size
        self.is_streaming = False
        self.start_time: Optional[float] = None
        self.sample_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def channel_names(self) -> List[str]:
        return self.channels

    def start(self, on_sample: SampleCallback) -> None:
        """Start streaming EEG data into `on_sample`."""
        if self.is_streaming:
            logger.warning("eeg_stream_already_running")
            return

        self._stop_event.clear()
        self.is_streaming = True
        self.start_time = time.time()
        self.sample_count = 0
        self._thread = threading.Thread(
            target=self._run, args=(on_sample,), name="eeg-simulator", daemon=True
        )
        self._thread.start()
        logger.info("eeg_streaming_started", speed=self.speed)

    def stop(self) -> None:
        """Stop streaming EEG data."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        self.is_streaming = False

        duration = time.time() - self.start_time if self.start_time else 0
        logger.info(
            "eeg_streaming_stopped",
            duration_seconds=duration,
            total_samples=self.sample_count
        )

    def set_class(self, label: Optional[int]) -> None:
        with self._lock:
            super().set_class(label)

    def inject_blink(self, duration: float = 0.3, amplitude: float = 400.0) -> None:
        with self._lock:
            super().inject_blink(duration, amplitude)

    def _run(self, on_sample: SampleCallback) -> None:
        interval = self.chunk_size / (self.sampling_rate * self.speed)
        next_deadline = time.monotonic()

        while not self._stop_event.is_set():
            for _ in range(self.chunk_size):
                with self._lock:
                    sample = self.generate_sample()
                on_sample(sample)
                self.sample_count += 1

            next_deadline += interval
            delay = next_deadline - time.monotonic()
            if delay > 0:
                self._stop_event.wait(delay)
            else:
                # Fell behind; don't try to catch up with a burst
                next_deadline = time.monotonic()
