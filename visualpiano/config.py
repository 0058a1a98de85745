"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Playback window
    look_behind: float = 1.2
    look_ahead: float = 3.5
    jump_tolerance: float = 0.2  # backward jump that forces a cursor resync
    active_fps: int = 30
    idle_fps: int = 8

    # Transport
    default_speed: float = 1.0
    speed_min: float = 0.5
    speed_max: float = 2.0
    speed_step: float = 0.05

    # Seeking and marks
    seek_coalesce_ms: int = 48
    mark_epsilon: float = 0.001
    snap_threshold: float = 0.12
    snap_hold_seconds: float = 1.0
    min_loop_seconds: float = 0.01

    # Hand assignment
    chord_window: float = 0.06
    chord_span: int = 10
    split_seeds: tuple[float, float] = (40.0, 72.0)
    split_iterations: int = 8

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 10

    model_config = {"env_prefix": "VISUALPIANO_"}


settings = Settings()
