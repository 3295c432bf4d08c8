"""
Gaussian Naive Bayes classifier for band power feature vectors.

Classes are small positive integer labels (1 and 2 in the usual two-class
set-up). The model keeps, per class, a sample count, per-feature mean and
variance, and a prior equal to the class frequency.
"""

import threading
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray
from sklearn.naive_bayes import GaussianNB

from neuroclassifier.core.exceptions import ModelError, ValidationError
from neuroclassifier.core.logging import get_logger

logger = get_logger(__name__)


def as_training_arrays(
    features: ArrayLike,
    labels: ArrayLike
) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
    """
    Validate and convert a training set to (n_examples, n_features) / (n_examples,).
    """
    X = np.asarray(features, dtype=np.float64)
    y = np.asarray(labels, dtype=np.int64)

    if X.size == 0 and y.size == 0:
        return X.reshape(0, 0), y.reshape(0)
    if X.ndim != 2:
        raise ValidationError(f"Features must be 2-D, got shape {X.shape}")
    if y.ndim != 1 or len(y) != len(X):
        raise ValidationError(
            f"Got {len(X)} feature vectors but labels of shape {y.shape}"
        )
    return X, y


class NaiveBayesClassifier:
    """
    Gaussian Naive Bayes with incremental fitting and diagnostics.

    Wraps scikit-learn's GaussianNB. `fit` swaps in a freshly fitted model
    under a lock, so the pipeline thread can keep predicting while the
    command surface retrains.
    """

    def __init__(self, var_smoothing: float = 1e-9):
        """
        Initialize classifier.

        Args:
            var_smoothing: Fraction of the largest feature variance added to
                every variance for numerical stability
        """
        self.var_smoothing = var_smoothing
        self.model: Optional[GaussianNB] = None
        self._lock = threading.Lock()

    @property
    def is_trained(self) -> bool:
        return self.model is not None

    @property
    def n_features(self) -> Optional[int]:
        model = self.model
        return None if model is None else int(model.theta_.shape[1])

    @property
    def classes(self) -> List[int]:
        model = self.model
        return [] if model is None else [int(c) for c in model.classes_]

    def fit(self, features: ArrayLike, labels: ArrayLike) -> None:
        """
        Recompute class statistics and priors from scratch.

        An empty training set leaves the current model untouched.

        Args:
            features: Array of shape (n_examples, n_features)
            labels: Integer labels of shape (n_examples,)
        """
        X, y = as_training_arrays(features, labels)
        if len(X) == 0:
            logger.warning("fit_skipped_empty_training_set")
            return

        model = GaussianNB(var_smoothing=self.var_smoothing)
        model.fit(X, y)

        with self._lock:
            self.model = model

        logger.info(
            "classifier_fitted",
            n_examples=len(X),
            n_features=X.shape[1],
            priors=self.class_priors()
        )

    def partial_fit(
        self,
        features: ArrayLike,
        labels: ArrayLike,
        classes: Optional[Sequence[int]] = None
    ) -> None:
        """
        Fold new examples into the running statistics.

        The label set is fixed by the first call: pass `classes` up front if
        later batches may contain labels the first batch lacks.
        """
        X, y = as_training_arrays(features, labels)
        if len(X) == 0:
            return

        with self._lock:
            if self.model is None:
                declared = np.asarray([] if classes is None else classes, dtype=np.int64)
                all_classes = np.union1d(y, declared)
                model = GaussianNB(var_smoothing=self.var_smoothing)
                model.partial_fit(X, y, classes=all_classes)
                self.model = model
            else:
                unknown = np.setdiff1d(y, self.model.classes_)
                if unknown.size:
                    raise ValidationError(
                        f"Labels {unknown.tolist()} were not declared on the first partial_fit"
                    )
                self.model.partial_fit(X, y)

        logger.debug("classifier_partial_fit", n_examples=len(X))

    def predict(self, features: ArrayLike) -> int:
        """
        Most probable label for one feature vector.

        Ties go to the lowest label.

        Args:
            features: Feature vector of shape (n_features,)

        Returns:
            Predicted label
        """
        x = np.asarray(features, dtype=np.float64).reshape(1, -1)
        return int(self.predict_many(x)[0])

    def predict_many(self, features: ArrayLike) -> NDArray[np.int64]:
        X = np.asarray(features, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(1, -1)

        with self._lock:
            model = self.model
            if model is None:
                raise ModelError("Classifier has no class statistics; call fit first")
            if X.shape[1] != model.theta_.shape[1]:
                raise ValidationError(
                    f"Expected {model.theta_.shape[1]} features, got {X.shape[1]}"
                )
            # argmax returns the first maximum and classes_ is sorted ascending
            joint_log_likelihood = model.predict_joint_log_proba(X)
            return model.classes_[np.argmax(joint_log_likelihood, axis=1)]

    def score(self, features: ArrayLike, labels: ArrayLike) -> float:
        """
        Accuracy of `predict` against true labels.

        Returns:
            Fraction correct in [0, 1]; 0.0 for an empty set
        """
        X, y = as_training_arrays(features, labels)
        if len(X) == 0:
            return 0.0
        return float(np.mean(self.predict_many(X) == y))

    def class_priors(self) -> Dict[int, float]:
        """Prior per label; empty before the first fit."""
        model = self.model
        if model is None:
            return {}
        return {int(c): float(p) for c, p in zip(model.classes_, model.class_prior_)}

    def class_counts(self) -> Dict[int, int]:
        model = self.model
        if model is None:
            return {}
        return {int(c): int(n) for c, n in zip(model.classes_, model.class_count_)}

    def discriminative_power(self) -> NDArray[np.float64]:
        """
        Per-feature Fisher ratio.

        Prior-weighted variance of the class means divided by the
        prior-weighted mean of the class variances. Zero for every feature
        when fewer than two classes are known.

        Returns:
            Array of shape (n_features,)
        """
        model = self.model
        if model is None:
            raise ModelError("Classifier has no class statistics; call fit first")

        priors = model.class_prior_[:, np.newaxis]
        grand_mean = np.sum(priors * model.theta_, axis=0)
        between = np.sum(priors * (model.theta_ - grand_mean) ** 2, axis=0)
        within = np.sum(priors * model.var_, axis=0)
        return between / np.maximum(within, np.finfo(np.float64).tiny)

    def ranked_features(self, feature_names: Sequence[str]) -> List[Tuple[str, float]]:
        """
        Features sorted by discriminative power, strongest first.
        """
        power = self.discriminative_power()
        if len(feature_names) != len(power):
            raise ValidationError(
                f"Got {len(feature_names)} names for {len(power)} features"
            )
        order = np.argsort(-power, kind='stable')
        return [(feature_names[i], float(power[i])) for i in order]

    def reset(self) -> None:
        """Forget all class statistics."""
        with self._lock:
            self.model = None
        logger.info("classifier_reset")
