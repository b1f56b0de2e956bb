#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== Identity ==========
    # Origin id stamped on every indexed document; suggestions from the same
    # wiki are "local".
    wiki_id: str = "default"

    # ========== Translation memory services ==========
    # name -> {type, class, writable, mirrors, public, cutoff, url, ...}
    ttm_services: Dict[str, Any] = {}
    ttm_services_file: Optional[Path] = None
    ttm_default_service: Optional[str] = None

    # ========== Timeouts ==========
    ttm_query_timeout: float = 10.0  # index queries and remote TM calls
    ttm_bootstrap_timeout: float = 3600.0  # admin calls, tolerate cluster reshuffles

    # ========== Replication ==========
    ttm_max_error_retry: int = 4  # a job that already failed this often is abandoned
    ttm_bulk_retry_attempts: int = 5
    ttm_bulk_retry_delay: float = 10.0
    ttm_bootstrap_batch_size: int = 500
    ttm_run_worker: bool = True  # drain the in-process job queue from the API server
    ttm_worker_interval: float = 1.0  # seconds between queue drains

    # ========== Fuzzy search ==========
    ttm_default_cutoff: float = 0.65
    ttm_first_page_size: int = 100
    ttm_escalation_factor: int = 5
    ttm_distinct_scores: int = 6
    ttm_lookup_size: int = 25

    # ========== Database ==========
    database_dir: Path = BASE_DIR / "data"

    # ========== Logging ==========
    log_level: str = "INFO"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    @field_validator("ttm_max_error_retry", "ttm_bulk_retry_attempts")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.ttm_services_file and not self.ttm_services:
            self.ttm_services = self._load_services_file(self.ttm_services_file)

    @staticmethod
    def _load_services_file(path: Path) -> Dict[str, Any]:
        """Read the service mapping from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object of services")
        return data


# Global settings instance
settings = Settings()
