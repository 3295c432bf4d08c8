"""
Signal processing pipeline for EEG data.
"""

from neuroclassifier.signal_processing.buffer import CircularBuffer
from neuroclassifier.signal_processing.feature_extraction import BandPowerExtractor
from neuroclassifier.signal_processing.noise_gate import NoiseGate
from neuroclassifier.signal_processing.preprocessing import (
    ArtifactFilter,
    StreamingArtifactFilter,
)
from neuroclassifier.signal_processing.spectral import SmoothedPSDHistory, SpectralEstimator

__all__ = [
    "CircularBuffer",
    "ArtifactFilter",
    "StreamingArtifactFilter",
    "NoiseGate",
    "SpectralEstimator",
    "SmoothedPSDHistory",
    "BandPowerExtractor",
]
