"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str

    # Database
    database_url: str

    # Public URL Twilio uses to reach the webhooks (e.g. ngrok, Railway)
    base_url: Optional[str] = None

    # Phone numbers
    default_country_code: str = "+81"

    # IVR execution
    ivr_max_retries: int = 2  # re-prompts before a required question fails the call
    ivr_gather_timeout: int = 5  # seconds
    ivr_recording_max_length: int = 60  # seconds, used when a question has no max_length
    ivr_voice: str = "Polly.Mizuki"
    ivr_language: str = "ja-JP"
    reprompt_message: str = "Sorry, we did not get a valid answer. Please try again."
    completed_message: str = "Thank you for your answers. Goodbye."
    failed_message: str = "We could not complete the call. Goodbye."

    # Scenario YAML imported at startup (optional)
    seed_scenario_file: Optional[str] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
