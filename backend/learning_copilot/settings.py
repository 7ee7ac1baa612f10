from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Gemini (Generative Language API, key sent via x-goog-api-key header)
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta", validation_alias="GEMINI_BASE_URL")
	gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")

	# OpenAI-compatible providers
	groq_base_url: str = Field(default="https://api.groq.com/openai/v1/chat/completions", validation_alias="GROQ_BASE_URL")
	groq_model: str = Field(default="llama-3.3-70b-versatile", validation_alias="GROQ_MODEL")
	cerebras_base_url: str = Field(default="https://api.cerebras.ai/v1/chat/completions", validation_alias="CEREBRAS_BASE_URL")
	cerebras_model: str = Field(default="llama3.1-8b", validation_alias="CEREBRAS_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_model: str = Field(default="anthropic/claude-3-haiku", validation_alias="OPENROUTER_MODEL")
	openrouter_referer: str = Field(default="http://localhost:3000", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Personalized Learning Copilot", validation_alias="OPENROUTER_TITLE")

	# Per-call timeouts (seconds)
	chat_timeout_seconds: float = Field(default=30.0, validation_alias="CHAT_TIMEOUT_SECONDS")
	quiz_generation_timeout_seconds: float = Field(default=45.0, validation_alias="QUIZ_GENERATION_TIMEOUT_SECONDS")
	quiz_followup_timeout_seconds: float = Field(default=30.0, validation_alias="QUIZ_FOLLOWUP_TIMEOUT_SECONDS")
	# Max AI quiz generation requests per user per minute
	quiz_generation_rate_limit: int = Field(default=30, validation_alias="QUIZ_GENERATION_RATE_LIMIT")

	# Session-scoped key cache
	session_secret: str = Field(default="default-secret", validation_alias="SESSION_SECRET")
	key_session_ttl_minutes: int = Field(default=30, validation_alias="KEY_SESSION_TTL_MINUTES")
	key_max_failures: int = Field(default=3, validation_alias="KEY_MAX_FAILURES")

	# Quiz sessions: "memory" or "sql"
	quiz_store_backend: str = Field(default="memory", validation_alias="QUIZ_STORE_BACKEND")
	quiz_session_ttl_minutes: int = Field(default=120, validation_alias="QUIZ_SESSION_TTL_MINUTES")
	conversation_ttl_minutes: int = Field(default=120, validation_alias="CONVERSATION_TTL_MINUTES")
	# Background eviction loop period; 0 disables it
	cleanup_interval_seconds: int = Field(default=600, validation_alias="CLEANUP_INTERVAL_SECONDS")

	# Auth configuration (bearer token is optional; anonymous requests use default_user_id)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	default_user_id: str = Field(default="demo-user", validation_alias="DEFAULT_USER_ID")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Logging
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
