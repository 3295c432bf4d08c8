"""
Machine learning components for the classification pipeline.

Includes:
- Gaussian Naive Bayes classifier
- k-fold cross-validation
- Session training set
"""

from neuroclassifier.ml.naive_bayes import NaiveBayesClassifier
from neuroclassifier.ml.cross_validation import contiguous_folds, cross_validate
from neuroclassifier.ml.training_set import TrainingSet

__all__ = [
    'NaiveBayesClassifier',
    'contiguous_folds',
    'cross_validate',
    'TrainingSet'
]
