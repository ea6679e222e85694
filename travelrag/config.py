"""Configuration settings using Pydantic"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Keys (empty means the provider is not configured)
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    cohere_api_key: str = Field(default="", alias="COHERE_API_KEY")

    # Supabase Configuration
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_key: str = Field(default="", alias="SUPABASE_KEY")

    # "supabase" for pgvector, "memory" for the in-process store
    store_backend: str = Field(default="supabase", alias="STORE_BACKEND")

    # Application Settings
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    log_file: str = Field(default="", alias="LOG_FILE")
    request_timeout_seconds: int = Field(default=120, alias="REQUEST_TIMEOUT_SECONDS")

    # CORS Settings (comma-separated list of allowed origins)
    allowed_origins: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")

    # Embedding Settings
    embedding_model: str = Field(default="embed-multilingual-v3.0", alias="EMBEDDING_MODEL")
    embedding_dimension: int = Field(default=1024, alias="EMBEDDING_DIMENSION")
    embedding_max_chars: int = Field(default=8000, alias="EMBEDDING_MAX_CHARS")
    embedding_timeout_seconds: float = Field(default=10.0, alias="EMBEDDING_TIMEOUT_SECONDS")
    embedding_max_retries: int = Field(default=5, alias="EMBEDDING_MAX_RETRIES")
    embedding_backoff_base_seconds: float = Field(default=1.0, alias="EMBEDDING_BACKOFF_BASE_SECONDS")
    embedding_backoff_jitter_seconds: float = Field(default=1.0, alias="EMBEDDING_BACKOFF_JITTER_SECONDS")

    # Completion (Gemini) Settings
    model_name: str = Field(default="gemini-2.5-flash", alias="MODEL_NAME")
    model_temperature: float = Field(default=0.4, alias="MODEL_TEMPERATURE")
    model_max_output_tokens: int = Field(default=8192, alias="MODEL_MAX_OUTPUT_TOKENS")
    completion_timeout_seconds: float = Field(default=90.0, alias="COMPLETION_TIMEOUT_SECONDS")
    completion_max_retries: int = Field(default=5, alias="COMPLETION_MAX_RETRIES")
    completion_backoff_base_seconds: float = Field(default=2.0, alias="COMPLETION_BACKOFF_BASE_SECONDS")

    # Hybrid reranking weights (tunable, not derived from measurement)
    rerank_vector_weight: float = Field(default=0.5, alias="RERANK_VECTOR_WEIGHT")
    rerank_lexical_weight: float = Field(default=0.5, alias="RERANK_LEXICAL_WEIGHT")

    # Retrieval defaults for draft generation
    rag_top_k: int = Field(default=8, alias="RAG_TOP_K")
    rag_fetch_multiplier: int = Field(default=3, alias="RAG_FETCH_MULTIPLIER")
    rag_itinerary_limit: int = Field(default=3, alias="RAG_ITINERARY_LIMIT")
    rag_min_similarity: float = Field(default=0.3, alias="RAG_MIN_SIMILARITY")
    catalog_limit: int = Field(default=50, alias="CATALOG_LIMIT")
    catalog_floor: int = Field(default=15, alias="CATALOG_FLOOR")
    catalog_cache_ttl_seconds: float = Field(default=600.0, alias="CATALOG_CACHE_TTL_SECONDS")
    places_per_day: int = Field(default=4, alias="PLACES_PER_DAY")
    default_region: str = Field(default="Seoul", alias="DEFAULT_REGION")

    # Entity resolution
    fuzzy_match_threshold: float = Field(default=0.3, alias="FUZZY_MATCH_THRESHOLD")

    # FAQ answering
    faq_direct_threshold: float = Field(default=0.75, alias="FAQ_DIRECT_THRESHOLD")
    faq_source_min_similarity: float = Field(default=0.4, alias="FAQ_SOURCE_MIN_SIMILARITY")
    faq_suggestion_threshold: float = Field(default=0.45, alias="FAQ_SUGGESTION_THRESHOLD")
    faq_top_k: int = Field(default=4, alias="FAQ_TOP_K")

    # Batch analytics
    duplicate_threshold: float = Field(default=0.92, alias="DUPLICATE_THRESHOLD")
    duplicate_neighbors: int = Field(default=5, alias="DUPLICATE_NEIGHBORS")
    low_confidence_threshold: float = Field(default=0.3, alias="LOW_CONFIDENCE_THRESHOLD")
    categorize_batch_size: int = Field(default=50, alias="CATEGORIZE_BATCH_SIZE")
    backfill_batch_size: int = Field(default=100, alias="BACKFILL_BATCH_SIZE")
    concurrency_window: int = Field(default=5, alias="CONCURRENCY_WINDOW")
    inter_batch_delay_seconds: float = Field(default=0.3, alias="INTER_BATCH_DELAY_SECONDS")

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


# Global settings instance
settings = Settings()
