"""
Custom exceptions for the neuroclassifier pipeline.
"""


class NeuroClassifierError(Exception):
    """Base exception for all neuroclassifier errors."""

    def __init__(self, message: str, code: str = "NEUROCLASSIFIER_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class BufferUnderrunError(NeuroClassifierError):
    """Not enough buffered samples for the requested window."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="BUFFER_UNDERRUN")


class ProcessingError(NeuroClassifierError):
    """Signal processing errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PROCESSING_ERROR")


class SessionError(NeuroClassifierError):
    """Command issued in the wrong session state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SESSION_ERROR")


class ModelError(NeuroClassifierError):
    """Machine learning model errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="MODEL_ERROR")


class ValidationError(NeuroClassifierError):
    """Data validation errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
