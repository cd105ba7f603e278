"""Runtime configuration for Storybox."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="STORYBOX_", env_file=".env", extra="ignore")

    app_name: str = "storybox"
    log_level: str = "INFO"

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    chat_model: str = "gpt-4o"
    vision_model: str = "gpt-4o-mini"
    image_model: str = "dall-e-3"
    placeholder_image_url: str = "https://placehold.co/400"

    color_distance_threshold: float = Field(
        default=30.0,
        description="Euclidean RGB distance above which a pixel counts as changed.",
    )
    change_threshold: float = Field(
        default=0.02,
        description="Fraction of changed pixels above which a frame counts as a new observation.",
    )
    frame_debounce_ms: int = 200

    export_dir: str = "."
    export_filename_pattern: str = "storybox-%Y%m%d-%H%M%S.xml"

    phrase_time_limit: float = 5.0
    expert_voice: str | None = None
    novice_voice: str | None = None


settings = Settings()
