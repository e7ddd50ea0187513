"""Pydantic-based settings for Qualia."""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are Qualia AI, a helpful and professional business assistant designed to help with business tasks, "
    "lead generation, customer support, and market research. Always respond in a clear, concise, and "
    "professional manner. When you don't know something, acknowledge it and suggest alternatives or offer "
    "to research it further."
)


class Settings(BaseSettings):
    """Configuration settings for Qualia."""

    model_config = SettingsConfigDict(
        env_prefix="QUALIA_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8010, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Data directories
    data_dir: str = Field(default="./data", description="Base data directory")

    # Provider settings
    provider: Literal["assistants", "local"] = Field(default="assistants", description="Assistant run provider")
    openai_api_key: str = Field(
        default="sk-dummy-key",
        validation_alias=AliasChoices("QUALIA_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="API key for the assistant provider",
    )
    openai_base_url: str | None = Field(default=None, description="Override provider base URL")
    assistant_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("QUALIA_ASSISTANT_ID", "ASSISTANT_ID"),
        description="Assistant used for runs",
    )
    model: str = Field(default="mistral-large-latest", description="Chat model for the local provider")
    request_timeout: float = Field(default=60.0, description="Per-request timeout in seconds")
    run_expiry: float = Field(default=600.0, description="Seconds before a local run is marked expired")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt seeded into new threads")
    welcome_message: str = Field(
        default="Welcome to Qualia Business Suite! How can I assist you today?",
        description="Message seeded into a thread on force reset",
    )

    # Polling settings
    poll_interval: float = Field(default=1.0, description="Seconds between run status checks")
    poll_max_wait: float = Field(default=30.0, description="Seconds before the client stops waiting for a run")

    # Pagination
    page_size: int = Field(default=20, description="Messages fetched per page")

    # Cache settings
    message_cache_size: int = Field(default=10, description="Threads kept in the message cache")
    message_cache_ttl: float = Field(default=5 * 60, description="Message cache TTL in seconds")
    search_cache_size: int = Field(default=20, description="Queries kept in the search cache")
    search_cache_ttl: float = Field(default=10 * 60, description="Search cache TTL in seconds")
    audio_cache_size: int = Field(default=50, description="Clips kept in the audio cache")
    cache_sweep_interval: float = Field(default=60.0, description="Seconds between expired-entry sweeps")

    # Web search settings
    search_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("QUALIA_SEARCH_API_KEY", "SEARCH_API_KEY"),
        description="Google Custom Search API key",
    )
    search_engine_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("QUALIA_SEARCH_ENGINE_ID", "SEARCH_ENGINE_ID"),
        description="Google Custom Search engine id",
    )
    search_url: str = Field(default="https://www.googleapis.com/customsearch/v1", description="Search endpoint")

    # Text-to-speech settings
    tts_url: str = Field(default="https://freetts.com/Home/PlayAudio", description="Primary TTS endpoint")
    tts_fallback_url: str = Field(
        default="https://translate.google.com/translate_tts", description="Fallback TTS endpoint"
    )

    # Connectivity settings
    connectivity_probe_url: str = Field(
        default="https://www.gstatic.com/generate_204", description="URL probed to detect connectivity"
    )
    connectivity_interval: float = Field(default=15.0, description="Seconds between connectivity probes")

    # Derived properties
    @property
    def state_file(self) -> Path:
        """Persistent client state (thread id and offline queue)."""
        return Path(self.data_dir) / "client_state.json"

    @property
    def log_format(self) -> str:
        """Log message format."""
        return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
settings = Settings()
