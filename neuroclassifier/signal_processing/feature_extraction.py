"""
Band power feature extraction from smoothed log PSD frames.

Produces one value per (channel, band) for the canonical EEG bands:
delta, theta, alpha, beta, gamma.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from neuroclassifier.core.exceptions import ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


# Frequency bands (Hz), half-open [low, high)
DEFAULT_BANDS: Dict[str, Tuple[float, float]] = {
    'delta': (1.0, 4.0),
    'theta': (4.0, 8.0),
    'alpha': (8.0, 13.0),
    'beta': (13.0, 30.0),
    'gamma': (30.0, 44.0)
}


class BandPowerExtractor:
    """
    Turn a smoothed PSD frame into a fixed-length feature vector.

    Bin masks are derived once from the estimator's frequency bins, so the
    band boundaries cannot drift within a session. Features are ordered
    channel-major: every band of channel 0, then every band of channel 1.
    """

    def __init__(
        self,
        freq_bins: NDArray[np.float64],
        channel_names: Sequence[str],
        bands: Optional[Dict[str, Tuple[float, float]]] = None
    ) -> None:
        """
        Initialize band power extractor.

        Args:
            freq_bins: Centre frequency of every PSD bin (Hz)
            channel_names: Channel labels, in frame row order
            bands: Band name -> (low, high) Hz; defaults to DEFAULT_BANDS
        """
        self.freq_bins = np.asarray(freq_bins, dtype=np.float64)
        self.channel_names = list(channel_names)
        self.bands = dict(bands or DEFAULT_BANDS)

        self.band_masks: Dict[str, NDArray[np.bool_]] = {}
        for band_name, (low_freq, high_freq) in self.bands.items():
            mask = (self.freq_bins >= low_freq) & (self.freq_bins < high_freq)
            if not np.any(mask):
                raise ValidationError(
                    f"Band '{band_name}' ({low_freq}-{high_freq} Hz) contains no frequency bins"
                )
            self.band_masks[band_name] = mask

        logger.info(
            "band_power_extractor_initialized",
            bands=list(self.bands),
            n_channels=len(self.channel_names),
            n_features=self.n_features
        )

    @property
    def n_features(self) -> int:
        return len(self.channel_names) * len(self.bands)

    @property
    def feature_names(self) -> List[str]:
        """Names in feature vector order, e.g. 'AF7_alpha'."""
        return [
            f"{channel}_{band_name}"
            for channel in self.channel_names
            for band_name in self.bands
        ]

    def extract(self, smoothed_psd: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Mean log power per band and channel.

        Args:
            smoothed_psd: Log PSD of shape (n_channels, n_bins)

        Returns:
            Feature vector of shape (n_channels * n_bands,)
        """
        expected = (len(self.channel_names), len(self.freq_bins))
        if smoothed_psd.shape != expected:
            raise ValidationError(
                f"PSD has shape {smoothed_psd.shape}, expected {expected}"
            )

        # (n_channels, n_bands)
        band_powers = np.column_stack([
            np.mean(smoothed_psd[:, mask], axis=1)
            for mask in self.band_masks.values()
        ])
        return band_powers.reshape(-1)

    def extract_dict(self, smoothed_psd: NDArray[np.float64]) -> Dict[str, float]:
        """Same as `extract`, keyed by feature name."""
        features = self.extract(smoothed_psd)
        return {name: float(value) for name, value in zip(self.feature_names, features)}
