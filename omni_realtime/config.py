"""Configuration settings for the realtime session service using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="OMNI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Host to bind to")
    port: int = Field(default=8000, description="Port to bind to")

    # Realtime endpoint
    api_key: str | None = Field(
        default=None,
        description="API key for the realtime endpoint",
    )
    realtime_url: str = Field(
        default="wss://dashscope.aliyuncs.com/api-ws/v1/realtime",
        description="WebSocket URL of the realtime endpoint",
    )
    model: str = Field(
        default="qwen3-omni-flash-realtime",
        description="Realtime model identifier",
    )
    language: str = Field(
        default="zh-CN",
        description="Language tag stored with saved conversations",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for opening the realtime connection",
    )

    # Conversation settings
    voice: str = Field(default="Cherry", description="Assistant voice")
    instructions: str = Field(
        default="You are a helpful assistant. Answer briefly and naturally.",
        description="System instructions sent with session.update",
    )
    input_audio_format: Literal["pcm16"] = Field(
        default="pcm16",
        description="Format of microphone audio chunks",
    )
    output_audio_format: Literal["pcm16", "pcm24"] = Field(
        default="pcm24",
        description="Format of assistant audio",
    )
    transcription_model: str = Field(
        default="gummy-realtime-v1",
        description="Model used to transcribe user speech",
    )

    # Server-side VAD
    vad_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Speech probability threshold for turn detection",
    )
    silence_duration_ms: int = Field(
        default=800,
        description="Silence that ends a user turn in milliseconds",
    )

    # Frame gating
    # Images are only interleaved once the outbound audio stream is established
    image_enable_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Delay after the first audio chunk before frames may be sent",
    )

    # Session limits
    max_sessions: int = Field(
        default=20,
        description="Maximum concurrent presentation sessions",
    )
    persist_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for waiting on conversation saves at close",
    )

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def realtime_endpoint(self) -> str:
        """Realtime URL with the model query parameter."""
        separator = "&" if "?" in self.realtime_url else "?"
        return f"{self.realtime_url}{separator}model={self.model}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Export a default instance for convenience
settings = get_settings()
