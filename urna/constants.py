"""Centralized constants for the URNA capture-session orchestrator.

All gesture thresholds, timer periods and size limits are defined here for easy maintenance.
"""

# Gestures (seconds)
HOLD_DURATION: float = 3.0  # Long press needed to capture an image
HOLD_TICK: float = 0.1  # Hold-progress resolution
TAP_WINDOW: float = 0.8  # Window for counting a triple tap
TAP_TRIGGER_COUNT: int = 3  # Taps needed to toggle recording

# Recording
AUDIO_MIN_BYTES: int = 1000  # Smallest plausible M4A clip
IMAGE_MIN_BYTES: int = 100  # Smallest plausible JPEG

# Playback (seconds)
PLAYBACK_AUTO_STOP: float = 15.0  # Forced return to Idle if no completion event

# Inference backend
DEFAULT_BASE_URL: str = "https://lifedebugger-urna-backend.hf.space"
PREDICT_PATH: str = "/api/v1/predict"
HEALTH_PATH: str = "/health"
REQUEST_TIMEOUT: float = 600.0
HEALTH_TIMEOUT: float = 10.0
USER_AGENT: str = "URNA-Mobile/1.0"
IMAGE_FIELD_NAME: str = "image_file"
AUDIO_FIELD_NAME: str = "audio_file"
IMAGE_FILENAME: str = "image.jpg"
AUDIO_FILENAME: str = "audio.m4a"

# Simulated backend (seconds)
SIMULATED_DELAY: float = 3.0

# Tracing
TELEMETRY_SERVICE_NAME: str = "urna-orchestrator"
TELEMETRY_EXPORTER: str = "console"  # console | otlp | none
OTLP_ENDPOINT: str = "http://localhost:4317"

# Environment keys
ALLOWED_ENV_KEYS: set[str] = {
    "URNA_BASE_URL",
    "URNA_PREDICT_PATH",
    "URNA_SIMULATE",
    "URNA_REQUEST_TIMEOUT",
    "URNA_ENABLE_AUDIO_FEEDBACK",
    "URNA_ENABLE_HAPTIC_FEEDBACK",
    "URNA_PLAYBACK_TIMEOUT",
    "URNA_TELEMETRY_EXPORTER",
    "URNA_OTLP_ENDPOINT",
}

# Native config directory name
APP_CONFIG_DIR: str = "urna"
