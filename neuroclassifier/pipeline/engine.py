"""
Background pipeline loop.

Coordinates window extraction, artifact gating, spectral estimation,
band power extraction and classification, in one of two modes:

- collecting: every clean window becomes a labelled training example
- predicting: every clean window becomes a predicted label
"""

import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import numpy as np
from numpy.typing import NDArray

from neuroclassifier.core.config import Settings, get_settings
from neuroclassifier.core.exceptions import BufferUnderrunError, ModelError, SessionError, ValidationError
from neuroclassifier.core.logging import get_logger
from neuroclassifier.ml.naive_bayes import NaiveBayesClassifier
from neuroclassifier.ml.training_set import TrainingSet
from neuroclassifier.pipeline.context import SessionContext
from neuroclassifier.signal_processing import (
    BandPowerExtractor,
    CircularBuffer,
    NoiseGate,
    SmoothedPSDHistory,
    SpectralEstimator,
)

logger = get_logger(__name__)


class PipelineMode(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    PREDICTING = "predicting"


class PassStatus(Enum):
    OK = "ok"
    ARTIFACT_REJECTED = "artifact_rejected"
    FAULT = "fault"


@dataclass
class PassResult:
    """Outcome of one pipeline pass over one window."""
    status: PassStatus
    features: Optional[NDArray[np.float64]] = None
    label: Optional[int] = None
    flags: Optional[NDArray[np.bool_]] = None
    reason: Optional[str] = None


@dataclass
class Prediction:
    label: int
    timestamp: float
    features: Optional[NDArray[np.float64]] = None


@dataclass
class PipelineFault:
    """A pass that raised. `fatal` faults halt the loop."""
    reason: str
    timestamp: float
    consecutive: int
    fatal: bool


@dataclass
class EngineStats:
    windows_processed: int = 0
    windows_rejected: int = 0
    examples_collected: int = 0
    predictions_emitted: int = 0
    faults: int = 0
    started_at: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            'windows_processed': self.windows_processed,
            'windows_rejected': self.windows_rejected,
            'examples_collected': self.examples_collected,
            'predictions_emitted': self.predictions_emitted,
            'faults': self.faults,
            'running_seconds': time.time() - self.started_at if self.started_at else 0.0
        }


PredictionCallback = Callable[[Prediction], None]
FaultCallback = Callable[[PipelineFault], None]


class PipelineEngine:
    """
    Mode state machine plus the consumer thread that drives it.

    The loop waits on the buffer until a step's worth of new samples is
    pending, extracts one window and runs it through the stages. Faults in
    a pass are reported on the fault channel and the loop moves on to the
    next window; only `max_consecutive_faults` in a row halt it.
    """

    def __init__(
        self,
        context: SessionContext,
        buffer: CircularBuffer,
        classifier: NaiveBayesClassifier,
        training_set: TrainingSet,
        settings: Optional[Settings] = None,
        max_queued_predictions: int = 1000
    ):
        """
        Initialize pipeline engine.

        Args:
            context: Session sampling rate, channels and windowing
            buffer: Buffer the producer pushes filtered samples into
            classifier: Model used while predicting
            training_set: Destination of examples while collecting
            settings: Thresholds and loop tuning (default: global settings)
            max_queued_predictions: Prediction queue bound; oldest dropped first
        """
        settings = settings or get_settings()

        self.context = context
        self.buffer = buffer
        self.classifier = classifier
        self.training_set = training_set
        self.window_length = context.window_length
        self.prediction_step = context.prediction_step
        self.poll_timeout = settings.poll_timeout
        self.max_consecutive_faults = settings.max_consecutive_faults

        if self.window_length > buffer.n_samples:
            raise ValidationError(
                f"Window of {self.window_length} samples exceeds buffer of {buffer.n_samples}"
            )

        # Stages
        self.noise_gate = NoiseGate(
            variance_threshold=settings.noise_variance_threshold,
            amplitude_threshold=settings.noise_amplitude_threshold,
            sensitivity=settings.noise_sensitivity
        )
        self.estimator = SpectralEstimator(
            sampling_rate=context.sampling_rate,
            window_length=self.window_length,
            log_floor=settings.log_power_floor
        )
        self.psd_history = SmoothedPSDHistory(
            depth=settings.psd_history_depth,
            n_channels=context.n_channels,
            n_bins=self.estimator.n_bins
        )
        self.extractor = BandPowerExtractor(
            freq_bins=self.estimator.freq_bins,
            channel_names=context.channel_names
        )

        # Output channels
        self.predictions: "queue.Queue[Prediction]" = queue.Queue(maxsize=max_queued_predictions)
        self._prediction_callbacks: List[PredictionCallback] = []
        self._fault_callbacks: List[FaultCallback] = []
        self.last_fault: Optional[PipelineFault] = None

        # State
        self.mode = PipelineMode.IDLE
        self.current_label: Optional[int] = None
        self.stats = EngineStats()
        self._consecutive_faults = 0
        self._state_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        logger.info(
            "pipeline_engine_initialized",
            sampling_rate=context.sampling_rate,
            window_length=self.window_length,
            prediction_step=self.prediction_step,
            n_features=self.extractor.n_features
        )

    @property
    def is_running(self) -> bool:
        return self.mode is not PipelineMode.IDLE

    @property
    def feature_names(self) -> List[str]:
        return self.extractor.feature_names

    def subscribe(
        self,
        on_prediction: Optional[PredictionCallback] = None,
        on_fault: Optional[FaultCallback] = None
    ) -> None:
        """Register callbacks invoked from the pipeline thread."""
        if on_prediction is not None:
            self._prediction_callbacks.append(on_prediction)
        if on_fault is not None:
            self._fault_callbacks.append(on_fault)

    def start_collecting(self, label: int) -> None:
        """
        Collect training examples for `label`.

        Windows do not overlap while collecting, so consecutive examples
        are not near-duplicates of each other.
        """
        label = int(label)
        if label < 1:
            raise ValidationError(f"Labels must be positive integers, got {label}")
        self._start(PipelineMode.COLLECTING, label, step=self.window_length)

    def start_predicting(self) -> None:
        """Emit a prediction every `prediction_step` samples."""
        if not self.classifier.is_trained:
            raise ModelError("Classifier has no class statistics; call fit first")
        self._start(PipelineMode.PREDICTING, None, step=self.prediction_step)

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the loop and wait for any in-flight pass to finish.

        Once this returns, no further example is added and no further
        prediction is emitted.
        """
        with self._state_lock:
            stop_event, thread = self._stop_event, self._thread
            if stop_event is not None:
                stop_event.set()
            previous_mode = self.mode
            self.mode = PipelineMode.IDLE
            self.current_label = None
            self._thread = None
            self._stop_event = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("pipeline_thread_join_timeout", timeout=timeout)

        if previous_mode is not PipelineMode.IDLE:
            logger.info("pipeline_stopped", mode=previous_mode.value, **self.stats.as_dict())

    def get_prediction(self, timeout: Optional[float] = None) -> Optional[Prediction]:
        """Next queued prediction, or None if none arrives within `timeout`."""
        try:
            return self.predictions.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain_predictions(self) -> List[Prediction]:
        drained = []
        while True:
            try:
                drained.append(self.predictions.get_nowait())
            except queue.Empty:
                return drained

    def process_window(
        self,
        window: NDArray[np.float64],
        mode: PipelineMode = PipelineMode.COLLECTING
    ) -> PassResult:
        """
        Run gate, spectral, smoothing and feature stages on one window.

        Raises whatever a stage raises; `run_pass` turns that into a fault.

        Args:
            window: EEG data of shape (n_channels, window_length)
            mode: PREDICTING also classifies the feature vector

        Returns:
            OK with features (and label when predicting), or ARTIFACT_REJECTED
        """
        flags = self.noise_gate.detect(window)
        if self.noise_gate.any_flagged(flags):
            return PassResult(status=PassStatus.ARTIFACT_REJECTED, flags=flags)

        frame = self.estimator.compute_frame(window)
        self.psd_history.update(frame)
        features = self.extractor.extract(self.psd_history.mean())

        label = None
        if mode is PipelineMode.PREDICTING:
            label = self.classifier.predict(features)

        return PassResult(status=PassStatus.OK, features=features, label=label)

    def run_pass(self, mode: PipelineMode) -> Optional[PassResult]:
        """
        Extract the latest window and process it.

        Returns:
            None on buffer underrun (not yet), otherwise the pass result
        """
        try:
            window = self.buffer.extract(self.window_length)
        except BufferUnderrunError:
            return None

        try:
            return self.process_window(window, mode)
        except Exception as e:
            logger.exception("pipeline_pass_failed", error=str(e))
            return PassResult(status=PassStatus.FAULT, reason=f"{type(e).__name__}: {e}")

    def _start(self, mode: PipelineMode, label: Optional[int], step: int) -> None:
        with self._state_lock:
            if self.mode is not PipelineMode.IDLE:
                raise SessionError(f"Pipeline already {self.mode.value}")

            # A new mode never averages spectra from the previous one
            self.psd_history.clear()
            self.buffer.reset_pending()
            self._consecutive_faults = 0
            self.stats = EngineStats(started_at=time.time())

            self.mode = mode
            self.current_label = label
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event, mode, label, step),
                name=f"pipeline-{mode.value}",
                daemon=True
            )
            self._thread.start()

        logger.info("pipeline_started", mode=mode.value, label=label, step=step)

    def _run(
        self,
        stop_event: threading.Event,
        mode: PipelineMode,
        label: Optional[int],
        step: int
    ) -> None:
        while not stop_event.is_set():
            if not self.buffer.wait_for_window(step, self.window_length, timeout=self.poll_timeout):
                continue
            if stop_event.is_set():
                break

            result = self.run_pass(mode)
            if result is None or stop_event.is_set():
                # Underrun, or stopped mid-pass: nothing is published
                continue

            try:
                self._dispatch(result, stop_event, label)
            except Exception as e:
                logger.exception("pipeline_dispatch_failed", error=str(e))
                self._report_fault(f"{type(e).__name__}: {e}", stop_event)

    def _dispatch(
        self,
        result: PassResult,
        stop_event: threading.Event,
        label: Optional[int]
    ) -> None:
        self.stats.windows_processed += 1

        if result.status is PassStatus.ARTIFACT_REJECTED:
            self.stats.windows_rejected += 1
            # A rejected window completed its pass, so it ends a fault run
            self._consecutive_faults = 0
            logger.debug(
                "window_rejected",
                flagged_channels=[
                    name for name, flagged in zip(self.context.channel_names, result.flags) if flagged
                ]
            )
            return

        if result.status is PassStatus.FAULT:
            self._report_fault(result.reason or "unknown", stop_event)
            return

        if result.label is None:
            self.training_set.add(result.features, label)
            self.stats.examples_collected += 1
        else:
            self._emit(Prediction(label=result.label, timestamp=time.time(), features=result.features))

        self._consecutive_faults = 0

    def _emit(self, prediction: Prediction) -> None:
        try:
            self.predictions.put_nowait(prediction)
        except queue.Full:
            # Host isn't polling; keep the newest
            self.predictions.get_nowait()
            self.predictions.put_nowait(prediction)

        self.stats.predictions_emitted += 1
        logger.debug("prediction_emitted", label=prediction.label)

        for callback in list(self._prediction_callbacks):
            try:
                callback(prediction)
            except Exception:
                logger.exception("prediction_callback_failed")

    def _report_fault(self, reason: str, stop_event: threading.Event) -> None:
        self._consecutive_faults += 1
        self.stats.faults += 1
        fatal = self._consecutive_faults >= self.max_consecutive_faults
        fault = PipelineFault(
            reason=reason,
            timestamp=time.time(),
            consecutive=self._consecutive_faults,
            fatal=fatal
        )
        self.last_fault = fault

        if fatal:
            logger.error("pipeline_halted", reason=reason, consecutive_faults=self._consecutive_faults)
            stop_event.set()
            with self._state_lock:
                # Only clear state that still belongs to this run
                if self._stop_event is stop_event:
                    self.mode = PipelineMode.IDLE
                    self.current_label = None
                    self._stop_event = None
                    self._thread = None
        else:
            logger.warning("pipeline_fault", reason=reason, consecutive_faults=self._consecutive_faults)

        for callback in list(self._fault_callbacks):
            try:
                callback(fault)
            except Exception:
                logger.exception("fault_callback_failed")
