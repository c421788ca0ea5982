from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Knowledge Bulk Import"
    debug: bool = False

    # OpenAI (via gen_ai_hub proxy)
    # No API key needed - uses gen_ai_hub proxy
    openai_model: str = "gpt-5"
    temperature: float = 0.0

    # SAP GenAI SDK
    sap_genai_api_url: str = ""
    sap_genai_api_key: str = ""
    sap_genai_deployment_id: str = ""
    sap_genai_endpoint: str = ""

    # "llm" uses the proxied model, "stub" runs offline without a model
    capability_backend: str = "llm"

    # Optional YAML file with system prompt overrides
    prompts_file: Optional[str] = None

    # Source loading
    url_fetch_timeout: int = 20  # Seconds
    max_source_chars: int = 15000  # Per source sent to the model
    max_preview_chars: int = 500  # Existing unit preview for grouping

    # Conflict detection
    coherence_min_sources: int = 2
    coherence_max_sources: int = 5
    analysis_concurrency: int = 3

    # Generation / commit
    generation_concurrency: int = 3
    commit_concurrency: int = 3
    max_urls_per_generation: int = 2  # URLs per call when updating
    generation_timeout: Optional[float] = None  # Seconds, None = no limit

    model_config = ConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
