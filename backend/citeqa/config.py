# backend/citeqa/config.py
from __future__ import annotations
import logging
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env before reading settings
load_dotenv()

logger = logging.getLogger("citeqa.config")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1/"
    http_timeout: float = 120.0

    books_dir: str = "books"
    index_cache_path: str = ".vector_cache.json"

    retrieval_mode: Literal["indexed", "extract"] = "indexed"
    query_model: str = "gpt-4o-mini"
    extract_model: str = "gpt-4o-mini"
    final_model: str = "gpt-4o"
    temperature: float = 0.2

    index_poll_interval: float = 1.0
    index_build_timeout: float = 120.0
    query_ready_timeout: float = 30.0
    index_name_prefix: str = "citeqa"

    aggregate_scope: Literal["all", "selection"] = "all"
    persist_pair_aggregates: bool = False
    label_separators: str = "--,_"

    prewarm_on_startup: bool = False

    @property
    def separators(self) -> List[str]:
        return [s for s in self.label_separators.split(",") if s]


# Instantiate settings once
settings = Settings()

if not settings.openai_api_key:
    logger.warning("OPENAI_API_KEY is not set; requests will fail until it is configured.")
