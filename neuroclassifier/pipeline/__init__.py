"""
Classification pipeline: session context, engine loop and command surface.
"""

from neuroclassifier.pipeline.context import SessionContext
from neuroclassifier.pipeline.engine import (
    EngineStats,
    PassResult,
    PassStatus,
    PipelineEngine,
    PipelineFault,
    PipelineMode,
    Prediction,
)
from neuroclassifier.pipeline.session import ClassifierSession, FitReport

__all__ = [
    "SessionContext",
    "EngineStats",
    "PassResult",
    "PassStatus",
    "PipelineEngine",
    "PipelineFault",
    "PipelineMode",
    "Prediction",
    "ClassifierSession",
    "FitReport",
]
