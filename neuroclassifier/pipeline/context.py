"""
Session context: the device facts every pipeline stage is sized from.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from neuroclassifier.core.config import Settings
from neuroclassifier.core.exceptions import ValidationError


@dataclass(frozen=True)
class SessionContext:
    """Sampling rate, channels and windowing for one session."""
    sampling_rate: int
    channel_names: Tuple[str, ...]
    filter_enabled: bool
    window_length: int  # samples
    buffer_duration: float  # seconds
    prediction_step: int  # samples

    @property
    def n_channels(self) -> int:
        return len(self.channel_names)

    @property
    def buffer_capacity(self) -> int:
        return int(self.buffer_duration * self.sampling_rate)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sampling_rate: Optional[int] = None,
        channel_names: Optional[Sequence[str]] = None
    ) -> 'SessionContext':
        """
        Build a context, overriding the configured device where given.

        The mains filter is only enabled for sampling rates its stop band
        was chosen for.
        """
        rate = int(settings.eeg_sampling_rate if sampling_rate is None else sampling_rate)
        channels = tuple(settings.eeg_channel_names if channel_names is None else channel_names)

        if rate <= 0:
            raise ValidationError(f"Sampling rate must be positive, got {rate}")
        if not channels:
            raise ValidationError("At least one channel is required")

        window_length = int(settings.window_duration * rate)
        buffer_duration = max(settings.buffer_duration, settings.window_duration)
        if settings.prediction_step < 1:
            raise ValidationError(
                f"Prediction step must be >= 1, got {settings.prediction_step}"
            )

        return cls(
            sampling_rate=rate,
            channel_names=channels,
            filter_enabled=rate in settings.bandstop_sampling_rates,
            window_length=window_length,
            buffer_duration=buffer_duration,
            prediction_step=settings.prediction_step
        )
