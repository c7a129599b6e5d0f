"""
Application settings and configuration
"""
import logging
from pathlib import Path
from typing import Optional, Tuple
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration"""

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 7001
    api_workers: int = 4
    cors_origins: list = ["*"]

    # Upload limits
    max_upload_bytes: int = 200 * 1024 * 1024
    max_megapixels: float = 80.0
    max_side: int = 12000  # Max width or height in pixels
    allowed_mime_types: list = Field(default_factory=lambda: ["image/png", "image/jpeg"])

    # Normalization
    work_size: int = 4000  # Soft downscale target (fit inside work_size x work_size)
    background_rgb: Tuple[int, int, int] = (255, 255, 255)
    normalize_gamma: float = 2.2
    normalize_lower_percentile: float = 1.0
    normalize_upper_percentile: float = 99.0

    # Edge degeneracy heuristic (empirical, tunable)
    flat_sample_step: int = 53
    flat_min_range: int = 2
    flat_dark_mean: float = 8.0
    flat_light_mean: float = 247.0
    flat_min_variance: float = 8.0

    # Conversion
    conversion_timeout: float = 120.0  # seconds
    trace_isolation: bool = True  # Trace in a child process when the caller can cancel
    trace_start_method: str = "spawn"
    trace_poll_interval: float = 0.05  # seconds between cancel checks

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    class Config:
        env_prefix = "SVGTRACE_"
        env_file = ".env"


settings = Settings()


def configure_logging(config: Optional[Settings] = None):
    """Configure root logging from settings"""
    cfg = config or settings
    handlers = [logging.StreamHandler()]
    if cfg.log_file:
        handlers.append(logging.FileHandler(cfg.log_file))

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )
