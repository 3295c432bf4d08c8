"""
k-fold cross-validation over collected training examples.

Partition: one shuffle, then k contiguous chunks of floor(m / k) examples
each. The m mod k examples past the last chunk are never tested; they always
land in the training folds.
"""

from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from neuroclassifier.core.exceptions import ValidationError
from neuroclassifier.core.logging import get_logger
from neuroclassifier.ml.naive_bayes import NaiveBayesClassifier, as_training_arrays

logger = get_logger(__name__)


def contiguous_folds(
    n_examples: int,
    k: int,
    rng: Optional[np.random.Generator] = None
) -> List[Tuple[NDArray[np.int64], NDArray[np.int64]]]:
    """
    Split shuffled example indices into k (train, test) pairs.

    Args:
        n_examples: Number of examples
        k: Number of folds (>= 2)
        rng: Random generator for the single shuffle

    Returns:
        k tuples of (train_indices, test_indices)
    """
    if k < 2:
        raise ValidationError(f"Cross-validation needs at least 2 folds, got {k}")

    rng = rng or np.random.default_rng()
    shuffled = rng.permutation(n_examples)
    chunk = n_examples // k

    folds = []
    for i in range(k):
        test = shuffled[i * chunk:(i + 1) * chunk]
        train = np.concatenate([shuffled[:i * chunk], shuffled[(i + 1) * chunk:]])
        folds.append((train, test))
    return folds


def cross_validate(
    features: ArrayLike,
    labels: ArrayLike,
    k: int,
    seed: Optional[int] = None,
    var_smoothing: float = 1e-9
) -> float:
    """
    Mean held-out accuracy over k folds.

    Every fold trains a fresh classifier, so no live model is touched.

    Args:
        features: Array of shape (n_examples, n_features)
        labels: Integer labels of shape (n_examples,)
        k: Number of folds (>= 2)
        seed: Seed for the shuffle
        var_smoothing: Passed to each fold's classifier

    Returns:
        Mean fold accuracy; 0.0 with no examples
    """
    if k < 2:
        raise ValidationError(f"Cross-validation needs at least 2 folds, got {k}")

    X, y = as_training_arrays(features, labels)
    if len(X) == 0:
        logger.warning("cross_validation_skipped_empty_training_set")
        return 0.0

    scores = []
    for train_idx, test_idx in contiguous_folds(len(X), k, np.random.default_rng(seed)):
        if len(test_idx) == 0:
            # Fewer examples than folds
            scores.append(0.0)
            continue

        fold_model = NaiveBayesClassifier(var_smoothing=var_smoothing)
        fold_model.fit(X[train_idx], y[train_idx])
        scores.append(fold_model.score(X[test_idx], y[test_idx]))

    mean_score = float(np.mean(scores))
    logger.info(
        "cross_validation_complete",
        k=k,
        n_examples=len(X),
        fold_scores=scores,
        score=mean_score
    )
    return mean_score
