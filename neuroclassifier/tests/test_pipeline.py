"""
Tests for the pipeline engine and its session context.

The engine runs on its own thread; tests feed samples synchronously and
wait for the engine's counters to move, so every window is accounted for.
"""

import time

import pytest
import numpy as np

from neuroclassifier.core.config import Settings
from neuroclassifier.core.exceptions import ModelError, SessionError, ValidationError
from neuroclassifier.eeg.simulator import EEGSimulator
from neuroclassifier.ml.naive_bayes import NaiveBayesClassifier
from neuroclassifier.ml.training_set import TrainingSet
from neuroclassifier.pipeline.context import SessionContext
from neuroclassifier.pipeline.engine import (
    PassStatus,
    PipelineEngine,
    PipelineMode,
    Prediction,
)
from neuroclassifier.signal_processing.buffer import CircularBuffer


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def build_engine(settings, **kwargs):
    context = SessionContext.from_settings(settings)
    buffer = CircularBuffer(
        n_channels=context.n_channels,
        buffer_duration=context.buffer_duration,
        sampling_rate=context.sampling_rate
    )
    return PipelineEngine(
        context=context,
        buffer=buffer,
        classifier=NaiveBayesClassifier(),
        training_set=TrainingSet(),
        settings=settings,
        **kwargs
    )


class TestSessionContext:
    """Test context derivation from settings."""

    def test_defaults(self):
        context = SessionContext.from_settings(Settings())

        assert context.sampling_rate == 256
        assert context.channel_names == ("TP9", "AF7", "AF8", "TP10")
        assert context.n_channels == 4
        assert context.window_length == 256
        assert context.prediction_step == 10
        assert context.filter_enabled

    def test_filter_disabled_at_220hz(self):
        context = SessionContext.from_settings(Settings(), sampling_rate=220)

        assert not context.filter_enabled
        assert context.window_length == 220

    def test_buffer_holds_at_least_one_window(self):
        context = SessionContext.from_settings(
            Settings(window_duration=3.0, buffer_duration=2.0)
        )

        assert context.buffer_duration == 3.0
        assert context.buffer_capacity >= context.window_length

    def test_channel_override(self):
        context = SessionContext.from_settings(Settings(), channel_names=["C3", "C4"])
        assert context.n_channels == 2

    def test_invalid_prediction_step(self):
        with pytest.raises(ValidationError):
            SessionContext.from_settings(Settings(prediction_step=0))

    def test_zero_sampling_rate_is_not_default(self):
        with pytest.raises(ValidationError):
            SessionContext.from_settings(Settings(), sampling_rate=0)

    def test_empty_channel_list_is_not_default(self):
        with pytest.raises(ValidationError):
            SessionContext.from_settings(Settings(), channel_names=[])


class TestSettings:
    """Test settings loading."""

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("EEG_SAMPLING_RATE", "220")
        monkeypatch.setenv("MAX_CONSECUTIVE_FAULTS", "2")

        settings = Settings()

        assert settings.eeg_sampling_rate == 220
        assert settings.max_consecutive_faults == 2

    def test_only_pipeline_fields(self):
        fields = set(Settings.model_fields)

        assert {"app_name", "app_version", "eeg_sampling_rate", "cv_folds"} <= fields
        assert "env" not in fields
        assert "debug" not in fields


class TestProcessWindow:
    """Test one pass through the stages, without the loop thread."""

    @pytest.fixture
    def engine(self):
        return build_engine(Settings())

    @pytest.fixture
    def simulator(self):
        sim = EEGSimulator(seed=42)
        sim.set_class(1)
        return sim

    def test_clean_window(self, engine, simulator):
        window = simulator.generate_chunk(1.0).T

        result = engine.process_window(window)

        assert result.status is PassStatus.OK
        assert result.features.shape == (20,)
        assert result.label is None
        assert len(engine.psd_history) == 1

    def test_blink_rejected(self, engine, simulator):
        simulator.inject_blink()
        window = simulator.generate_chunk(1.0).T

        result = engine.process_window(window)

        assert result.status is PassStatus.ARTIFACT_REJECTED
        assert result.flags[1] and result.flags[2]
        # Rejected windows never reach the spectral history
        assert len(engine.psd_history) == 0

    def test_predicting_needs_model(self, engine, simulator):
        with pytest.raises(ModelError):
            engine.process_window(simulator.generate_chunk(1.0).T, PipelineMode.PREDICTING)

    def test_run_pass_underrun(self, engine):
        assert engine.run_pass(PipelineMode.COLLECTING) is None

    def test_run_pass_fault(self, engine, simulator):
        engine.buffer.append(simulator.generate_chunk(1.0))

        result = engine.run_pass(PipelineMode.PREDICTING)

        assert result.status is PassStatus.FAULT
        assert "ModelError" in result.reason

    def test_window_larger_than_buffer(self):
        settings = Settings()
        context = SessionContext.from_settings(settings)
        small = CircularBuffer(n_channels=4, buffer_duration=0.5, sampling_rate=256)

        with pytest.raises(ValidationError):
            PipelineEngine(context, small, NaiveBayesClassifier(), TrainingSet(), settings)


class TestEngineLoop:
    """Test the threaded collection loop and mode transitions."""

    @pytest.fixture
    def engine(self):
        engine = build_engine(Settings())
        yield engine
        engine.stop()

    @pytest.fixture
    def simulator(self):
        sim = EEGSimulator(seed=7)
        sim.set_class(1)
        return sim

    def test_collects_one_example_per_window(self, engine, simulator):
        engine.start_collecting(1)
        assert engine.mode is PipelineMode.COLLECTING
        assert engine.current_label == 1

        for i in range(1, 4):
            simulator.stream_to(engine.buffer.push, 256)
            assert wait_until(lambda: engine.stats.examples_collected == i)

        assert engine.training_set.count(1) == 3

    def test_no_examples_after_stop(self, engine, simulator):
        engine.start_collecting(2)
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: engine.stats.examples_collected == 1)

        engine.stop()
        assert engine.mode is PipelineMode.IDLE
        assert not engine.is_running

        simulator.stream_to(engine.buffer.push, 512)
        time.sleep(0.1)
        assert len(engine.training_set) == 1

    def test_artifact_window_not_collected(self, engine, simulator):
        engine.start_collecting(1)

        simulator.inject_blink()
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: engine.stats.windows_processed == 1)

        assert engine.stats.windows_rejected == 1
        assert len(engine.training_set) == 0

    def test_start_while_running(self, engine):
        engine.start_collecting(1)
        with pytest.raises(SessionError):
            engine.start_collecting(2)

    def test_invalid_label(self, engine):
        with pytest.raises(ValidationError):
            engine.start_collecting(0)

    def test_predicting_needs_model(self, engine):
        with pytest.raises(ModelError):
            engine.start_predicting()
        assert engine.mode is PipelineMode.IDLE

    def test_restart_clears_history(self, engine, simulator):
        engine.start_collecting(1)
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: engine.stats.examples_collected == 1)
        engine.stop()

        engine.start_collecting(2)
        assert len(engine.psd_history) == 0
        assert engine.buffer.pending_count == 0

    def test_predictions_queued_and_published(self, engine, simulator):
        # Train on a few clean windows first
        engine.start_collecting(1)
        for i in range(1, 3):
            simulator.stream_to(engine.buffer.push, 256)
            assert wait_until(lambda: engine.stats.examples_collected == i)
        engine.stop()
        features, labels = engine.training_set.snapshot()
        engine.classifier.fit(features, labels)

        published = []
        engine.subscribe(on_prediction=published.append)
        engine.start_predicting()
        for i in range(1, 6):
            simulator.stream_to(engine.buffer.push, 10)
            assert wait_until(lambda: engine.stats.windows_processed == i)
        engine.stop()

        queued = engine.drain_predictions()
        assert len(queued) == 5
        assert [p.label for p in queued] == [1] * 5
        assert published == queued
        assert engine.get_prediction(timeout=0.01) is None

    def test_prediction_queue_keeps_newest(self):
        engine = build_engine(Settings(), max_queued_predictions=2)
        for label in [1, 2, 1]:
            engine._emit(Prediction(label=label, timestamp=time.time()))

        assert [p.label for p in engine.drain_predictions()] == [2, 1]
        assert engine.stats.predictions_emitted == 3

    def test_failing_callback_does_not_stop_emission(self):
        engine = build_engine(Settings())

        def broken(prediction):
            raise RuntimeError("subscriber bug")

        engine.subscribe(on_prediction=broken)
        engine._emit(Prediction(label=1, timestamp=time.time()))

        assert engine.get_prediction(timeout=0.01).label == 1


class TestFaultChannel:
    """Test fault reporting and the consecutive-fault halt."""

    @pytest.fixture
    def engine(self):
        engine = build_engine(Settings(max_consecutive_faults=3))
        yield engine
        engine.stop()

    @pytest.fixture
    def simulator(self):
        sim = EEGSimulator(seed=3)
        sim.set_class(2)
        return sim

    def test_consecutive_faults_halt(self, engine, simulator, monkeypatch):
        def failing(psd):
            raise RuntimeError("feature stage failed")

        monkeypatch.setattr(engine.extractor, "extract", failing)
        faults = []
        engine.subscribe(on_fault=faults.append)

        engine.start_collecting(1)
        for i in range(1, 4):
            simulator.stream_to(engine.buffer.push, 256)
            assert wait_until(lambda: len(faults) == i)

        assert wait_until(lambda: not engine.is_running)
        assert [f.fatal for f in faults] == [False, False, True]
        assert [f.consecutive for f in faults] == [1, 2, 3]
        assert engine.last_fault.fatal
        assert "feature stage failed" in engine.last_fault.reason
        assert len(engine.training_set) == 0

        # A halted engine can be started again
        engine.start_collecting(1)
        assert engine.mode is PipelineMode.COLLECTING

    def test_recovers_after_single_fault(self, engine, simulator, monkeypatch):
        extract = engine.extractor.extract
        calls = {'n': 0}

        def flaky(psd):
            calls['n'] += 1
            if calls['n'] == 1:
                raise RuntimeError("transient")
            return extract(psd)

        monkeypatch.setattr(engine.extractor, "extract", flaky)
        faults = []
        engine.subscribe(on_fault=faults.append)

        engine.start_collecting(1)
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: len(faults) == 1)
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: engine.stats.examples_collected == 1)

        assert engine.is_running
        assert not faults[0].fatal
        assert engine.stats.faults == 1

    def test_rejected_window_ends_fault_run(self, engine, simulator, monkeypatch):
        def failing(psd):
            raise RuntimeError("feature stage failed")

        monkeypatch.setattr(engine.extractor, "extract", failing)
        faults = []
        engine.subscribe(on_fault=faults.append)

        engine.start_collecting(1)
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: len(faults) == 1)

        # Blink: rejected by the gate before the failing stage runs
        simulator.inject_blink()
        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: engine.stats.windows_rejected == 1)

        simulator.stream_to(engine.buffer.push, 256)
        assert wait_until(lambda: len(faults) == 2)

        assert [f.consecutive for f in faults] == [1, 1]
        assert not faults[1].fatal
        assert engine.is_running


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
