"""
Configuration management using Pydantic Settings.
Loads from environment variables and .env file.
"""

from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="Which LLM provider to use"
    )

    # OpenAI
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o", description="OpenAI model name")

    # Anthropic
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        description="Anthropic model name"
    )

    # Decision service
    llm_temperature: float = Field(default=0.3, description="Sampling temperature")
    llm_max_tokens: int = Field(default=1024, description="Max tokens per decision")

    # Transcription
    transcription_model: str = Field(
        default="whisper-1",
        description="Speech-to-text model"
    )
    transcription_language: str = Field(default="en", description="Spoken language")
    max_audio_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted audio upload"
    )

    # Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3001, description="API port")
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Page agent
    server_url: str = Field(
        default="ws://localhost:3001/ws",
        description="WebSocket base URL the page agent connects to"
    )
    audio_upload_url: str = Field(
        default="http://localhost:3001/api/audio",
        description="Endpoint that accepts recorded utterances"
    )

    # Browser
    headless: bool = Field(default=False, description="Run browser in headless mode")
    browser_timeout: int = Field(default=30000, description="Browser timeout in ms")

    # Page map limits
    max_actions: int = Field(default=60, description="Max actions per page map")
    max_fields: int = Field(default=30, description="Max form fields per page map")
    max_sections: int = Field(default=15, description="Max prose sections per page map")
    max_snippet_length: int = Field(default=300, description="Section snippet cap")
    max_headings: int = Field(default=20, description="Max headings per page map")
    max_alerts: int = Field(default=5, description="Max alerts per page map")
    viewport_margin: int = Field(
        default=500,
        description="Pixels above/below the viewport still counted as visible"
    )

    # Truncation before the decision service
    prompt_max_actions: int = Field(default=40)
    prompt_max_fields: int = Field(default=30)
    prompt_max_sections: int = Field(default=10)
    prompt_max_snippet: int = Field(default=200)
    prompt_max_headings: int = Field(default=15)

    # Conversation history
    history_window: int = Field(
        default=20,
        description="Messages sent to the decision service per turn"
    )
    history_trim_threshold: int = Field(
        default=30,
        description="Stored history is cut back to the window past this size"
    )

    # Settle delays (ms)
    click_settle_ms: int = Field(default=150)
    text_settle_ms: int = Field(default=100)
    checkbox_settle_ms: int = Field(default=80)
    dropdown_settle_ms: int = Field(default=300)
    switch_refresh_ms: int = Field(default=500)
    profile_fill_delay_ms: int = Field(
        default=200,
        description="Delay between fields during a profile fill batch"
    )

    # Voice activity detection
    vad_threshold: float = Field(default=0.015, description="RMS speech threshold")
    vad_silence_ms: int = Field(default=1800, description="Silence that ends an utterance")
    vad_min_recording_ms: int = Field(
        default=600,
        description="Energy is ignored until this much time has passed"
    )
    vad_buffer_size: int = Field(default=512, description="Samples per analysis frame")
    vad_sample_rate: int = Field(default=16000, description="Capture sample rate")

    # Wake phrase
    wake_phrases: list[str] = Field(
        default=["hey jarvis", "hay jarvis", "hey jarves", "a jarvis", "hey javis", "jarvis"]
    )
    stop_phrases: list[str] = Field(
        default=[
            "stop", "jarvis stop", "hey jarvis stop", "stop jarvis",
            "cancel", "shut up", "be quiet", "quiet",
        ]
    )
    wake_restart_delay_ms: int = Field(default=500)
    wake_max_restarts: int = Field(
        default=20,
        description="Consecutive failed restarts before the spotter gives up"
    )
    wake_max_backoff_ms: int = Field(default=8000)
    wake_jitter: float = Field(default=0.2, description="Fractional restart jitter")

    # Risk policy
    risky_keywords: list[str] = Field(
        default=[
            "submit", "pay", "purchase", "buy", "send", "delete", "remove",
            "checkout", "confirm", "place order", "complete", "finalize",
            "transfer", "wire", "donate", "subscribe", "unsubscribe",
        ]
    )
    server_risky_keywords: list[str] = Field(
        default=["cancel subscription", "close account", "deactivate"],
        description="Extra keywords the orchestrator checks on click labels"
    )

    # User profile for form filling
    profile_path: str = Field(
        default="./data/profile.json",
        description="JSON file with the user's profile data"
    )


# Global settings instance
settings = Settings()
