from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = "Pixel Pusher"
    api_base_url: str = "http://localhost:8000/api"
    output_bucket: str = "image-resizer-output"
    region: str = "eu-north-1"
    output_base_url: str | None = None
    output_format: str = "jpeg"
    poll_interval_ms: int = 2000
    max_poll_attempts: int = 15
    retry_unexpected_status: bool = True
    default_quality: int = 85
    default_dimension: int = 128
    default_content_type: str = "application/octet-stream"
    http_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="PIXEL_PUSHER_")

    @property
    def public_output_base_url(self) -> str:
        if self.output_base_url:
            return self.output_base_url.rstrip("/")
        return f"https://{self.output_bucket}.s3.{self.region}.amazonaws.com"


settings = Settings()
