"""
Configuration settings for the inference orchestration layer.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # === Application ===
    APP_NAME: str = "Mail Inference"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    
    # === Ollama (local generative engine) ===
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "qwen2.5:3b"
    OLLAMA_EMBEDDING_MODEL: str = ""  # Empty disables native embeddings
    OLLAMA_TIMEOUT: int = 60  # seconds
    OLLAMA_MAX_RETRIES: int = 2
    OLLAMA_KEEP_ALIVE: str = "10m"
    ENGINE_REPROBE_SECONDS: float = 30.0  # Re-check a down daemon this often
    LLM_TEMPERATURE: float = 0.1
    
    # === Generation budgets ===
    CATEGORIZE_MAX_TOKENS: int = 20
    CATEGORIZE_OUTPUT_BUDGET_CHARS: int = 50
    SUMMARY_MAX_TOKENS: int = 200
    SMART_REPLY_MAX_TOKENS: int = 300
    SMART_REPLY_TIMEOUT_SECONDS: float = 8.0
    SMART_REPLY_MAX_SUGGESTIONS: int = 3
    
    # === Input Processing ===
    CLASSIFICATION_BODY_LIMIT: int = 2000  # chars
    SUMMARY_BODY_LIMIT: int = 1500  # chars per message
    SPAM_BODY_EXCERPT_CHARS: int = 500
    PROMPT_TEMPLATES_DIR: str = ""  # Empty uses the packaged templates
    
    # === Spam ensemble ===
    SPAM_MODEL_WEIGHT: float = 0.6
    SPAM_RULE_WEIGHT: float = 0.4
    SPAM_THRESHOLD: float = 0.5
    
    # === Batch processing ===
    BATCH_SIZE: int = 50
    
    # === Embeddings ===
    EMBEDDING_DIMENSION: int = 128
    
    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True
    METRICS_PORT: int = 0  # 0 keeps metrics in-process (no HTTP exporter)


# Global settings instance
settings = Settings()
