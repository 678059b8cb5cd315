"""Configuration management for the Tiered RAG Assistant."""

import os
from dataclasses import dataclass, field
from typing import Optional, List
from functools import lru_cache


def _split_keys(value: Optional[str]) -> List[str]:
    return [k.strip() for k in (value or "").split(",") if k.strip()]


@dataclass
class QdrantConfig:
    """Qdrant vector store configuration."""
    url: str = "http://qdrant:6333"
    api_key: Optional[str] = None
    knowledge_collection: str = "knowledge_base"
    queue_collection: str = "review_queue"
    vector_size: int = 1536  # text-embedding-3-small dimensions


@dataclass
class RedisConfig:
    """Redis configuration."""
    enabled: bool = False
    url: str = "redis://redis:6379"
    cache_ttl: int = 86400  # 1 day


@dataclass
class EmbeddingConfig:
    """Embedding model configuration."""
    provider: str = "openai"  # openai, sentence-transformers
    model_name: str = "text-embedding-3-small"
    dimensions: int = 1536
    max_tokens: int = 512
    openai_api_key: Optional[str] = None


@dataclass
class GenerationConfig:
    """LLM generation configuration."""
    provider: str = "gemini"  # gemini, openai, anthropic
    model: Optional[str] = None  # provider default when unset
    judge_model: Optional[str] = None
    search_provider: str = "gemini"  # gemini, openai
    search_model: Optional[str] = None
    max_tokens: int = 1024
    temperature: float = 0.2
    judge_temperature: float = 0.1
    judge_timeout_s: Optional[float] = None

    # Prompt context
    assistant_name: str = "Pirani AI"
    assistant_context: str = "Pirani Life (sustainable tumblers)"

    # API keys
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None


@dataclass
class RetrievalConfig:
    """Knowledge base retrieval configuration."""
    match_threshold: float = 0.50  # previously 0.70, then 0.60
    max_matches: int = 5


@dataclass
class QueueConfig:
    """Review queue configuration."""
    dedup_threshold: float = 0.85
    dedup_limit: int = 1


@dataclass
class AuthConfig:
    """Caller authorization configuration."""
    api_keys: List[str] = field(default_factory=list)
    admin_api_keys: List[str] = field(default_factory=list)


@dataclass
class Settings:
    """Main application settings."""
    app_name: str = "Tiered RAG Assistant"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Sub-configurations
    qdrant: QdrantConfig = field(default_factory=QdrantConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get application settings from environment."""
    judge_timeout = os.getenv("JUDGE_TIMEOUT_S")
    return Settings(
        debug=os.getenv("DEBUG", "false").lower() == "true",
        qdrant=QdrantConfig(
            url=os.getenv("QDRANT_URL", QdrantConfig.url),
            api_key=os.getenv("QDRANT_API_KEY"),
            vector_size=int(os.getenv("EMBEDDING_DIMENSIONS", QdrantConfig.vector_size)),
        ),
        redis=RedisConfig(
            enabled=os.getenv("REDIS_ENABLED", "false").lower() == "true",
            url=os.getenv("REDIS_URL", RedisConfig.url),
        ),
        embedding=EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", EmbeddingConfig.provider),
            model_name=os.getenv("EMBEDDING_MODEL", EmbeddingConfig.model_name),
            dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", EmbeddingConfig.dimensions)),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
        ),
        generation=GenerationConfig(
            provider=os.getenv("LLM_PROVIDER", GenerationConfig.provider),
            model=os.getenv("LLM_MODEL"),
            judge_model=os.getenv("JUDGE_MODEL"),
            search_provider=os.getenv("SEARCH_PROVIDER", GenerationConfig.search_provider),
            search_model=os.getenv("SEARCH_MODEL"),
            judge_timeout_s=float(judge_timeout) if judge_timeout else None,
            assistant_name=os.getenv("ASSISTANT_NAME", GenerationConfig.assistant_name),
            assistant_context=os.getenv("ASSISTANT_CONTEXT", GenerationConfig.assistant_context),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        ),
        retrieval=RetrievalConfig(
            match_threshold=float(
                os.getenv("RETRIEVAL_MATCH_THRESHOLD", RetrievalConfig.match_threshold)
            ),
            max_matches=int(os.getenv("RETRIEVAL_MAX_MATCHES", RetrievalConfig.max_matches)),
        ),
        queue=QueueConfig(
            dedup_threshold=float(
                os.getenv("QUEUE_DEDUP_THRESHOLD", QueueConfig.dedup_threshold)
            ),
        ),
        auth=AuthConfig(
            api_keys=_split_keys(os.getenv("CHAT_API_KEYS")),
            admin_api_keys=_split_keys(os.getenv("ADMIN_API_KEYS")),
        ),
    )
