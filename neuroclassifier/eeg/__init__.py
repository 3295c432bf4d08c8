"""
EEG sample sources: transport boundary and simulator.
"""

from neuroclassifier.eeg.device_interface import SampleCallback, SampleSource
from neuroclassifier.eeg.simulator import EEGSimulator, StreamingEEGSimulator

__all__ = [
    "SampleCallback",
    "SampleSource",
    "EEGSimulator",
    "StreamingEEGSimulator",
]
