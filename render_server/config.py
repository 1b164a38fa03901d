"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["*"]
    log_level: str = "info"

    # Rendered output
    videos_dir: str = "videos"
    videos_url_prefix: str = "/videos"

    # Remotion project
    remotion_entry_point: str = "src/remotion/index.ts"
    remotion_command: str = "npx remotion"
    composition_id: str = "MyVideo"
    render_codec: str = "h264"
    bundle_dir: Optional[str] = None  # temp dir when unset
    cache_bundle: bool = True

    # Job processing
    job_retention_hours: Optional[float] = None  # keep finished jobs forever

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
