from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="AI Typing Tutor", validation_alias="OPENROUTER_TITLE")

	# Circuit breaker: consecutive provider failures before calls are denied, and how long they stay denied
	failure_threshold: int = Field(default=3, ge=1, validation_alias="TUTOR_FAILURE_THRESHOLD")
	failure_cooldown_seconds: float = Field(default=300.0, ge=0, validation_alias="TUTOR_FAILURE_COOLDOWN_SECONDS")

	# Retry controller for the structured chat entry point (retries, not total attempts)
	max_retries: int = Field(default=2, ge=0, validation_alias="TUTOR_MAX_RETRIES")
	retry_backoff_seconds: float = Field(default=1.0, ge=0, validation_alias="TUTOR_RETRY_BACKOFF_SECONDS")

	provider_timeout_seconds: float = Field(default=30.0, gt=0, validation_alias="TUTOR_PROVIDER_TIMEOUT_SECONDS")
	history_window: int = Field(default=5, ge=0, validation_alias="TUTOR_HISTORY_WINDOW")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
