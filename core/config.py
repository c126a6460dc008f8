# WORKFLOW: Core configuration management for the tariff extraction service.
# Used by: All modules throughout the application
# Configuration includes:
# - Database connection settings (storage of final tariff codes)
# - LLM settings (Ollama host, text and vision model names)
# - Chunking parameters (window size, overlap, natural delimiters)
# - Orchestration limits (concurrency, retries, backoff, batch delay, timeouts)
# - Validation thresholds (code lengths, label lengths, plausible rate range)
# - API and logging configuration
#
# Loaded at startup; per-run options from requests override the extraction defaults.

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./tariff_codes.db"

    # LLM
    ollama_url: str = "http://localhost:11434"
    extraction_model: str = "llama3.1:8b"
    vision_model: str = "llama3.2-vision:11b"
    llm_temperature: float = 0.05
    llm_max_tokens: int = 32000

    # Chunking
    max_chunk_size: int = 35000
    chunk_overlap: int = 2000
    chunk_delimiters: list[str] = ["\n", "|"]

    # Orchestration
    concurrency: int = 4
    max_retries: int = 2
    backoff_base_seconds: float = 2.0
    batch_delay_seconds: float = 0.5
    call_timeout_seconds: float = 45.0
    run_timeout_seconds: Optional[float] = None
    max_pages: int = 50
    max_content_per_unit: int = 50000
    min_content_for_extraction: int = 100

    # Low-yield retry heuristic (tunable, not a correctness contract)
    low_yield_min_candidates: int = 3
    low_yield_min_content: int = 2000

    # Validation
    min_code_digits: int = 6
    primary_key_digits: int = 10
    extended_key_digits: int = 14
    label_max_length: int = 1000
    min_label_length: int = 3
    short_label_threshold: int = 20
    rate_min: float = 0.0
    rate_max: float = 100.0

    # API
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Tariff Extraction API"
    version: str = "1.0.0"

    # Environment
    environment: str = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8001

    class Config:
        env_file = ".env"
        case_sensitive = False
        protected_namespaces = ('settings_',)


settings = Settings()
