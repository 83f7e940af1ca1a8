"""
Configuration Management for Discovery

Loads configuration from ~/.discovery/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("discovery.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".discovery"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class LLMConfig:
    """Completion provider configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    temperature: float = 0.7
    max_tokens: int = 1000

    @property
    def model(self) -> str:
        """Model name for the selected provider"""
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "openai"  # or "femb" (fastembed, on-device)
    model: str = "text-embedding-3-small"


@dataclass
class StoreConfig:
    """Datastore configuration"""
    data_path: str = ""  # optional JSON seed for the in-memory store


@dataclass
class RetrievalConfig:
    """Retrieval agent limits and breakpoints"""
    semantic_limit: int = 30
    keyword_limit: int = 20
    skill_limit: int = 30
    sparse_result_threshold: int = 10  # graph enrichment runs below this
    expansion_threshold: int = 5  # expansion pass runs below this
    graph_seed_count: int = 5
    enrichment_depth: int = 1
    graph_result_cap: int = 10
    graph_post_limit: int = 10


@dataclass
class ResponseConfig:
    """Response agent thresholds and caps"""
    gap_score_threshold: float = 0.3
    context_limit: int = 10
    post_context_limit: int = 15
    source_scan_limit: int = 10
    max_sources: int = 3
    recent_days: int = 30
    preview_length: int = 100
    max_follow_ups: int = 3


@dataclass
class ServerConfig:
    """HTTP server and chat session configuration"""
    host: str = "0.0.0.0"
    port: int = 8090
    history_window: int = 10  # turns; each is a user message plus its answer
    max_attempts: int = 2
    session_max_age_hours: int = 24
    sweep_interval_seconds: int = 3600


@dataclass
class DiscoveryConfig:
    """Main Discovery configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    response: ResponseConfig = field(default_factory=ResponseConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _parse_section(data: dict, name: str, cls):
    """Build a section dataclass, keeping defaults for absent keys"""
    section = data.get(name) or {}
    defaults = cls()
    values = {
        key: section.get(key, getattr(defaults, key))
        for key in defaults.__dataclass_fields__
    }
    return cls(**values)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    return _parse_section(data, "llm", LLMConfig)


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    return _parse_section(data, "embedding", EmbeddingConfig)


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    return _parse_section(data, "store", StoreConfig)


def _parse_retrieval_config(data: dict) -> RetrievalConfig:
    """Parse retrieval section from config dict"""
    return _parse_section(data, "retrieval", RetrievalConfig)


def _parse_response_config(data: dict) -> ResponseConfig:
    """Parse response section from config dict"""
    return _parse_section(data, "response", ResponseConfig)


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    return _parse_section(data, "server", ServerConfig)


def load_config() -> DiscoveryConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.discovery/config.json)
    3. Default values
    """
    config = DiscoveryConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.store = _parse_store_config(data)
            config.retrieval = _parse_retrieval_config(data)
            config.response = _parse_response_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("DISCOVERY_DATA_PATH"):
        config.store.data_path = os.getenv("DISCOVERY_DATA_PATH")

    if os.getenv("DISCOVERY_HOST"):
        config.server.host = os.getenv("DISCOVERY_HOST")
    if os.getenv("DISCOVERY_PORT"):
        config.server.port = int(os.getenv("DISCOVERY_PORT"))

    # LLM env var overrides
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "DISCOVERY_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    return config
