"""
Configuration management for the neuroclassifier pipeline.
Loads settings from environment variables.
"""

from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "neuroclassifier"
    app_version: str = "0.1.0"

    # EEG Device Settings
    eeg_sampling_rate: int = 256  # 2016 BLE headsets; older ones stream at 220 Hz
    eeg_channel_names: List[str] = ["TP9", "AF7", "AF8", "TP10"]

    # Windowing
    window_duration: float = 1.0  # seconds
    buffer_duration: float = 2.0  # seconds
    prediction_step: int = 10  # samples between overlapping prediction windows

    # Artifact (mains) filter
    bandstop_low: float = 55.0  # Hz
    bandstop_high: float = 65.0  # Hz
    bandstop_order: int = 5
    bandstop_sampling_rates: List[int] = [256]

    # Noise gate
    noise_variance_threshold: float = 600.0  # uV^2
    noise_amplitude_threshold: float = 500.0  # uV peak-to-peak
    noise_sensitivity: float = 1.0

    # Spectral estimation
    psd_history_depth: int = 5  # frames
    log_power_floor: float = 1e-12

    # Machine Learning
    cv_folds: int = 5
    var_smoothing: float = 1e-9

    # Pipeline engine
    poll_timeout: float = 0.05  # seconds
    max_consecutive_faults: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """
    Get settings instance.
    Useful for building a session context without touching the global.
    """
    return settings
