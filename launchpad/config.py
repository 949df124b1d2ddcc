"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # API
    api_port: int = 8000
    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # Job retention
    job_retention_hours: float = 24
    job_sweep_interval_minutes: float = 60

    # Job processing
    job_step_delay_scale: float = 1.0  # 0 makes simulated stages instant
    direct_deploy_platform: str = "vercel"
    download_base_url: str = "https://launchpad.dev/downloads"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
