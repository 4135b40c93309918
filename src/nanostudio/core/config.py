"""Configuration management for Nano Studio."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "nano-studio"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # GCP Configuration
    GCP_PROJECT_ID: str = ""

    # Storage Configuration
    STORAGE_BACKEND: str = "local"  # "gcs" or "local"
    GCS_BUCKET_NAME: str = ""
    GCS_SIGN_WITH_IAM: bool = False  # Sign URLs via IAM signBlob (Cloud Run, no key file)
    LOCAL_STORAGE_PATH: str = "data/uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8000"  # Used to build local signed URLs
    LOCAL_SIGNING_SECRET: str = "change-me"

    # Upload Sessions
    UPLOAD_KEY_PREFIX: str = "uploads"
    SIGNED_URL_EXPIRATION_MINUTES: int = 60
    DEFAULT_MAX_FILE_SIZE_MB: int = 10
    MAX_UPLOAD_MB: int = 50
    ALLOWED_UPLOAD_MIME_TYPES: str = ""  # Comma-separated, empty = allow all
    MAX_UPLOAD_SESSIONS: int = 10_000

    # Chunked Image Analysis
    MAX_CHUNK_UPLOADS: int = 200
    MAX_CHUNKS_PER_UPLOAD: int = 1_000
    CHUNK_UPLOAD_TTL_SECONDS: int = 900

    # Vision model via an OpenAI-compatible endpoint (LM Studio by default)
    VISION_BASE_URL: str = "http://localhost:1234/v1"
    VISION_API_KEY: str = "lm-studio"
    VISION_MODEL: str = "minicpm-o-2_6"
    VISION_PROMPT: str = (
        "What do you see in this image? Describe it in detail, including any "
        "objects, colors, text, people, or activities visible."
    )
    VISION_MAX_TOKENS: int = 500
    VISION_TEMPERATURE: float = 0.1
    VISION_MAX_ATTEMPTS: int = 3
    REQUEST_TIMEOUT: int = 120  # seconds for vision model calls

    @property
    def allowed_mime_types(self) -> list[str] | None:
        """Parse ALLOWED_UPLOAD_MIME_TYPES into a list."""
        if not self.ALLOWED_UPLOAD_MIME_TYPES:
            return None
        return [mt.strip() for mt in self.ALLOWED_UPLOAD_MIME_TYPES.split(",")]

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def default_max_file_size_bytes(self) -> int:
        """Convert DEFAULT_MAX_FILE_SIZE_MB to bytes."""
        return self.DEFAULT_MAX_FILE_SIZE_MB * 1024 * 1024


# Singleton settings instance
settings = Settings()
