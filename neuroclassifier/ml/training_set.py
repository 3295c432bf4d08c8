"""
Labelled feature vectors collected during a session.
"""

import threading
from collections import Counter
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from neuroclassifier.core.exceptions import ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


class TrainingSet:
    """
    Thread-safe list of (feature vector, label) examples.

    The pipeline thread appends while the command surface counts, snapshots
    or clears; every access goes through one lock. The first example fixes
    the feature dimensionality for the rest of the session.
    """

    def __init__(self) -> None:
        self._features: List[NDArray[np.float64]] = []
        self._labels: List[int] = []
        self._n_features: Optional[int] = None
        self._lock = threading.Lock()

    def add(self, features: ArrayLike, label: int) -> None:
        """
        Append one example.

        Args:
            features: Feature vector of shape (n_features,)
            label: Positive integer class label
        """
        vector = np.array(features, dtype=np.float64).reshape(-1)
        label = int(label)
        if label < 1:
            raise ValidationError(f"Labels must be positive integers, got {label}")

        with self._lock:
            if self._n_features is None:
                self._n_features = len(vector)
            elif len(vector) != self._n_features:
                raise ValidationError(
                    f"Feature vector has {len(vector)} values, expected {self._n_features}"
                )
            self._features.append(vector)
            self._labels.append(label)
            total = len(self._labels)

        logger.debug("training_example_added", label=label, total_examples=total)

    def snapshot(self) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
        """
        Copy of the current examples.

        Returns:
            features: Array of shape (n_examples, n_features)
            labels: Array of shape (n_examples,)
        """
        with self._lock:
            if not self._features:
                return np.empty((0, self._n_features or 0)), np.empty(0, dtype=np.int64)
            return np.vstack(self._features), np.array(self._labels, dtype=np.int64)

    def counts(self) -> Dict[int, int]:
        """Examples per label."""
        with self._lock:
            return dict(Counter(self._labels))

    def count(self, label: int) -> int:
        with self._lock:
            return self._labels.count(int(label))

    def clear(self) -> None:
        with self._lock:
            self._features = []
            self._labels = []
            self._n_features = None
        logger.info("training_set_cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._labels)
