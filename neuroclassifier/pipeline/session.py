"""
Classifier session: the command surface a host application drives.

One session owns one device stream. The host initializes it for the
device's sampling rate, hands `on_sample` to its transport, then alternates
between collecting labelled examples, fitting, and predicting.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from neuroclassifier.core.config import Settings, get_settings
from neuroclassifier.core.exceptions import SessionError
from neuroclassifier.core.logging import get_logger
from neuroclassifier.ml.cross_validation import cross_validate
from neuroclassifier.ml.naive_bayes import NaiveBayesClassifier
from neuroclassifier.ml.training_set import TrainingSet
from neuroclassifier.pipeline.context import SessionContext
from neuroclassifier.pipeline.engine import (
    FaultCallback,
    PipelineEngine,
    PipelineFault,
    PipelineMode,
    Prediction,
    PredictionCallback,
)
from neuroclassifier.signal_processing import (
    ArtifactFilter,
    CircularBuffer,
    StreamingArtifactFilter,
)

logger = get_logger(__name__)


@dataclass
class FitReport:
    """Diagnostics returned by `fit_with_score`."""
    score: float
    priors: Dict[int, float]
    feature_power: Dict[str, float] = field(default_factory=dict)
    n_examples: int = 0

    def to_dict(self) -> Dict:
        return {
            'score': self.score,
            'priors': self.priors,
            'feature_power': self.feature_power,
            'n_examples': self.n_examples
        }


class ClassifierSession:
    """
    Collection/prediction session over one EEG stream.

    The training set and classifier survive mode switches and are only
    cleared by `reset`. Buffer, filter state and pipeline stages are sized
    by `initialize` from the session context.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        self.training_set = TrainingSet()
        self.classifier = NaiveBayesClassifier(var_smoothing=self.settings.var_smoothing)

        self.context: Optional[SessionContext] = None
        self.buffer: Optional[CircularBuffer] = None
        self.input_filter: Optional[StreamingArtifactFilter] = None
        self.engine: Optional[PipelineEngine] = None
        self._subscribers: List[Tuple[Optional[PredictionCallback], Optional[FaultCallback]]] = []

    # ------------------------------------------------------------------
    # Lifecycle

    def initialize(
        self,
        sampling_rate: Optional[int] = None,
        channel_names: Optional[Sequence[str]] = None
    ) -> SessionContext:
        """
        Allocate buffer, filter state and pipeline stages for the device.

        Args:
            sampling_rate: Device sampling rate (default: configured rate)
            channel_names: Device channels (default: configured channels)

        Returns:
            The session context everything was sized from
        """
        if self.engine is not None and self.engine.is_running:
            self.stop()

        self.context = SessionContext.from_settings(self.settings, sampling_rate, channel_names)
        self._build_pipeline()

        logger.info(
            "session_initialized",
            sampling_rate=self.context.sampling_rate,
            channels=list(self.context.channel_names),
            filter_enabled=self.context.filter_enabled,
            app=self.settings.app_name,
            version=self.settings.app_version
        )
        return self.context

    def reset(self) -> None:
        """Stop, forget all examples and the model, and start a fresh buffer."""
        self.stop()
        self.training_set.clear()
        self.classifier.reset()
        if self.context is not None:
            self._build_pipeline()
        logger.info("session_reset")

    def _build_pipeline(self) -> None:
        context = self.context
        self.buffer = CircularBuffer(
            n_channels=context.n_channels,
            buffer_duration=context.buffer_duration,
            sampling_rate=context.sampling_rate
        )

        artifact_filter = None
        if context.filter_enabled:
            artifact_filter = ArtifactFilter(
                sampling_rate=context.sampling_rate,
                n_channels=context.n_channels,
                stop_low=self.settings.bandstop_low,
                stop_high=self.settings.bandstop_high,
                order=self.settings.bandstop_order
            )
        self.input_filter = StreamingArtifactFilter(artifact_filter)

        self.engine = PipelineEngine(
            context=context,
            buffer=self.buffer,
            classifier=self.classifier,
            training_set=self.training_set,
            settings=self.settings
        )
        for on_prediction, on_fault in self._subscribers:
            self.engine.subscribe(on_prediction=on_prediction, on_fault=on_fault)

    def _require_engine(self) -> PipelineEngine:
        if self.engine is None:
            raise SessionError("Session not initialized; call initialize first")
        return self.engine

    # ------------------------------------------------------------------
    # Transport feed

    def on_sample(self, sample: Union[Sequence[float], NDArray[np.float64]]) -> None:
        """
        Ingest one multi-channel sample from the transport.

        Runs on the transport's thread: filters, then buffers.
        """
        input_filter, buffer = self.input_filter, self.buffer
        if buffer is None:
            raise SessionError("Session not initialized; call initialize first")
        buffer.push(input_filter.apply(sample))

    # ------------------------------------------------------------------
    # Commands

    def start_collecting(self, label: int) -> None:
        """Collect training examples for `label` until `stop`."""
        self._require_engine().start_collecting(label)

    def start_predicting(self) -> None:
        """Classify windows until `stop`; requires a fitted classifier."""
        self._require_engine().start_predicting()

    def stop(self) -> Optional[int]:
        """
        Halt the pipeline loop.

        Returns:
            Examples held for the label being collected, or None when the
            engine was not collecting (idle, predicting, or halted by faults)
        """
        engine = self.engine
        if engine is None:
            return None

        label = engine.current_label if engine.mode is PipelineMode.COLLECTING else None
        engine.stop()
        if label is None:
            return None

        count = self.training_set.count(label)
        logger.info("collection_stopped", label=label, examples=count)
        return count

    def get_collected_counts(self) -> Dict[int, int]:
        """
        Examples per label. Labels 1 and 2 are always present.
        """
        counts = {1: 0, 2: 0}
        counts.update(self.training_set.counts())
        return counts

    def fit(self) -> None:
        """Retrain the classifier on every collected example."""
        features, labels = self.training_set.snapshot()
        self.classifier.fit(features, labels)

    def fit_with_score(self, k: Optional[int] = None, seed: Optional[int] = None) -> FitReport:
        """
        Cross-validate, then retrain on the full training set.

        Args:
            k: Number of folds (default: configured cv_folds)
            seed: Seed for the cross-validation shuffle

        Returns:
            FitReport with mean fold accuracy, priors and per-feature power
        """
        if k is None:
            k = self.settings.cv_folds
        features, labels = self.training_set.snapshot()

        score = cross_validate(
            features, labels, k,
            seed=seed,
            var_smoothing=self.settings.var_smoothing
        )
        self.classifier.fit(features, labels)

        feature_power: Dict[str, float] = {}
        if self.classifier.is_trained and self.engine is not None:
            feature_power = {
                name: power for name, power in self.classifier.ranked_features(self.engine.feature_names)
            }

        report = FitReport(
            score=score,
            priors=self.classifier.class_priors(),
            feature_power=feature_power,
            n_examples=len(labels)
        )
        logger.info("fit_with_score_complete", score=score, priors=report.priors, k=k)
        return report

    # ------------------------------------------------------------------
    # Output

    def subscribe(
        self,
        on_prediction: Optional[PredictionCallback] = None,
        on_fault: Optional[FaultCallback] = None
    ) -> None:
        """Register callbacks; they survive `reset`."""
        self._subscribers.append((on_prediction, on_fault))
        if self.engine is not None:
            self.engine.subscribe(on_prediction=on_prediction, on_fault=on_fault)

    def get_prediction(self, timeout: Optional[float] = None) -> Optional[Prediction]:
        return self._require_engine().get_prediction(timeout)

    def drain_predictions(self) -> List[Prediction]:
        return self._require_engine().drain_predictions()

    @property
    def last_fault(self) -> Optional[PipelineFault]:
        return None if self.engine is None else self.engine.last_fault

    def get_status(self) -> Dict:
        """Snapshot for reporting."""
        engine = self.engine
        return {
            'initialized': engine is not None,
            'mode': (engine.mode if engine else PipelineMode.IDLE).value,
            'label': engine.current_label if engine else None,
            'counts': self.get_collected_counts(),
            'is_trained': self.classifier.is_trained,
            'priors': self.classifier.class_priors(),
            'sampling_rate': self.context.sampling_rate if self.context else None,
            'filter_enabled': self.context.filter_enabled if self.context else None,
            'stats': engine.stats.as_dict() if engine else {},
            'last_fault': engine.last_fault.reason if engine and engine.last_fault else None
        }
