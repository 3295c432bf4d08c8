"""
Transport boundary for EEG sample sources.

The pipeline only ever sees a plain callback invoked once per sample; any
transport (hardware adapter, file replay, simulator) drives that callback
from its own thread.
"""

from typing import Callable, List, Protocol, Sequence, Union

import numpy as np
from numpy.typing import NDArray

SampleCallback = Callable[[Union[Sequence[float], NDArray[np.float64]]], None]


class SampleSource(Protocol):
    """Anything that can push samples into a SampleCallback."""

    @property
    def sampling_rate(self) -> int:
        """Sampling rate in Hz."""
        ...

    @property
    def channel_names(self) -> List[str]:
        """Channel labels, in sample order."""
        ...

    def start(self, on_sample: SampleCallback) -> None:
        """Begin delivering samples to `on_sample`."""
        ...

    def stop(self) -> None:
        """Stop delivering samples."""
        ...
